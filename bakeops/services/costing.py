import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from bakeops.errors import NotFoundError, ConflictError, InvalidInputError
from bakeops.models.core import CakeOrder, OrderCosting
from bakeops.schemas.costing import (
    CalculationRequest, CostingResult, ComponentLine, TierCostLine, IngredientLine,
    DecorationLine, DeliveryLine, TopperLine, PackagingLine, ProductLine, DocumentKind,
)
from bakeops.services import volume_pricing
from bakeops.services.catalog import CatalogSnapshot
from bakeops.services.distance import DistanceProvider, HaversineDistanceProvider, LatLng
from bakeops.services.documents import to_request
from bakeops.services.pricing import PricingConfig, finalize, load_pricing_config, _money
from bakeops.services.recipe_resolver import COMPONENTS, resolve_tier
from bakeops.util.audit import audit

logger = logging.getLogger(__name__)

# order id -> [lock, holders]; entries go away once nobody holds or waits on them
_locks: dict[str, list] = {}
_locks_guard = threading.Lock()


@contextmanager
def _order_lock(order_id: str):
    with _locks_guard:
        entry = _locks.setdefault(order_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                _locks.pop(order_id, None)


def _enum_value(v):
    return getattr(v, "value", v)


def _topper_key(topper_type: str) -> str:
    # "It's a Boy" -> its_a_boy
    return "_".join(topper_type.lower().replace("'", "").replace("-", " ").split())


class _Rollup:
    """Unrounded running totals for one calculation."""

    def __init__(self):
        self.ingredient_qty: dict[str, float] = {}
        self.ingredient_cost = 0.0
        self.recipe_labor = 0.0
        self.assembly_labor = 0.0
        self.warnings: list[str] = []
        self.is_estimate = False

    def warn(self, where: str, message: Optional[str]):
        if message:
            self.warnings.append(f"{where}: {message}")
            self.is_estimate = True


def _cost_tiers(doc: CalculationRequest, catalog: CatalogSnapshot, config: PricingConfig,
                acc: _Rollup) -> tuple[list[TierCostLine], int]:
    lines = []
    servings = 0
    for tier in sorted(doc.tiers, key=lambda t: t.tier_index):
        where = f"tier {tier.tier_index}"
        tier_size = catalog.tier_sizes.get(tier.tier_size_id) if tier.tier_size_id else None
        tier_warning = None
        if tier.tier_size_id and tier_size is None:
            tier_warning = f"tier size {tier.tier_size_id} not found"
        elif not tier.tier_size_id:
            tier_warning = "no tier size selected"
        acc.warn(where, tier_warning)

        tier_ing = tier_labor = 0.0
        tier_estimate = tier_warning is not None
        components = []
        for name, rc in resolve_tier(tier, tier_size, catalog).items():
            acc.warn(f"{where} {name}", rc.warning)
            if rc.is_estimate and not rc.warning:
                acc.warn(f"{where} {name}", "multiplier estimated as 1.0 (volume or yield missing)")
            ing_cost = labor = 0.0
            if rc.recipe is not None:
                for ri in catalog.recipe_ingredients.get(rc.recipe.id, []):
                    ing = catalog.ingredients.get(ri.ingredient_id)
                    if ing is None:
                        acc.warn(f"{where} {name}", f"ingredient {ri.ingredient_id} not found")
                        continue
                    qty = float(ri.quantity) * rc.multiplier
                    acc.ingredient_qty[ing.id] = acc.ingredient_qty.get(ing.id, 0.0) + qty
                    ing_cost += qty * float(ing.cost_per_unit or 0)
                rate, degraded = catalog.role_rate(rc.recipe.labor_role_id, config.baker_rate)
                if degraded:
                    acc.warn(f"{where} {name}", f"labor role {rc.recipe.labor_role_id} not found, default rate used")
                labor = (float(rc.recipe.labor_minutes or 0) * rc.multiplier) / 60 * rate
            tier_ing += ing_cost
            tier_labor += labor
            tier_estimate = tier_estimate or rc.is_estimate
            components.append(ComponentLine(
                component=name,
                recipe_id=rc.recipe.id if rc.recipe else None,
                recipe_name=rc.recipe.name if rc.recipe else None,
                selector=rc.selector if rc.recipe else None,
                multiplier=round(rc.multiplier, 4),
                ingredient_cost=_money(ing_cost),
                labor_cost=_money(labor),
                is_estimate=rc.is_estimate,
                warning=rc.warning,
            ))

        assembly = 0.0
        if tier_size is not None:
            servings += int(tier_size.servings or 0)
            rate, degraded = catalog.role_rate(tier_size.assembly_role_id, config.baker_rate)
            if degraded:
                acc.warn(where, f"assembly role {tier_size.assembly_role_id} not found, default rate used")
                tier_estimate = True
            assembly = float(tier_size.assembly_minutes or 0) / 60 * rate

        acc.ingredient_cost += tier_ing
        acc.recipe_labor += tier_labor
        acc.assembly_labor += assembly
        lines.append(TierCostLine(
            tier_index=tier.tier_index,
            tier_size_id=tier.tier_size_id,
            tier_size_name=tier_size.name if tier_size else None,
            servings=int(tier_size.servings or 0) if tier_size else 0,
            components=components,
            ingredient_cost=_money(tier_ing),
            recipe_labor_cost=_money(tier_labor),
            assembly_labor_cost=_money(assembly),
            total_cost=_money(tier_ing + tier_labor + assembly),
            is_estimate=tier_estimate,
            warning=tier_warning,
        ))
    return lines, servings


def _cost_decorations(doc: CalculationRequest, catalog: CatalogSnapshot, config: PricingConfig,
                      acc: _Rollup) -> tuple[list[DecorationLine], float, float]:
    tier_indices = {t.tier_index for t in doc.tiers}
    lines = []
    material_total = labor_total = 0.0
    for i, d in enumerate(doc.decorations):
        where = f"decoration {i}"
        tech = catalog.decorations.get(d.decoration_technique_id)
        if tech is None:
            msg = f"decoration technique {d.decoration_technique_id} not found"
            acc.warn(where, msg)
            lines.append(DecorationLine(decoration_technique_id=d.decoration_technique_id,
                                        quantity=d.quantity, is_estimate=True, warning=msg))
            continue

        warning = None
        unit = d.unit_override or _enum_value(tech.unit)
        quantity = float(d.quantity)
        if unit == "TIER":
            if d.tier_indices:
                covered = {ix for ix in d.tier_indices if ix in tier_indices}
                if len(covered) != len(set(d.tier_indices)):
                    warning = "tier_indices reference tiers that are not on this cake"
                    acc.warn(where, warning)
                quantity *= len(covered)
            else:
                quantity *= len(doc.tiers)

        unit_cost = d.cost_override if d.cost_override is not None else float(tech.default_cost_per_unit or 0)
        material = float(unit_cost) * quantity
        minutes = float(tech.labor_minutes or 0) * quantity
        rate, degraded = catalog.role_rate(tech.labor_role_id, config.decorator_rate)
        if degraded:
            warning = f"labor role {tech.labor_role_id} not found, default rate used"
            acc.warn(where, warning)
        labor = minutes / 60 * rate

        material_total += material
        labor_total += labor
        lines.append(DecorationLine(
            decoration_technique_id=tech.id,
            sku=tech.sku,
            name=tech.name,
            category=tech.category,
            unit=unit,
            quantity=d.quantity,
            effective_quantity=quantity,
            material_cost=_money(material),
            labor_minutes=round(minutes, 2),
            labor_cost=_money(labor),
            total_cost=_money(material + labor),
            is_estimate=warning is not None,
            warning=warning,
        ))
    return lines, material_total, labor_total


def _cost_delivery(doc: CalculationRequest, catalog: CatalogSnapshot, config: PricingConfig,
                   provider: Optional[DistanceProvider], acc: _Rollup) -> tuple[DeliveryLine, float]:
    if not doc.is_delivery:
        return DeliveryLine(), 0.0

    distance = doc.delivery_distance
    minutes = None
    estimate = False
    warning = None
    if distance is None and doc.delivery_lat is not None and doc.delivery_lng is not None:
        if config.bakery_lat is not None and config.bakery_lng is not None:
            provider = provider or HaversineDistanceProvider()
            result = provider.distance(LatLng(config.bakery_lat, config.bakery_lng),
                                       LatLng(doc.delivery_lat, doc.delivery_lng))
            distance, minutes, estimate = result.miles, result.minutes, result.is_estimate
        else:
            warning = "bakery location is not configured"

    zone = None
    if doc.delivery_zone_id:
        zone = next((z for z in catalog.zones if z.id == doc.delivery_zone_id), None)
        if zone is None:
            warning = f"delivery zone {doc.delivery_zone_id} not found"
    elif distance is not None:
        zone = catalog.zone_for_distance(distance)
        if zone is None:
            warning = f"no delivery zone covers {distance:.1f} miles"
    elif warning is None:
        warning = "delivery distance unknown"

    cost = 0.0
    if zone is not None:
        cost = float(zone.base_fee or 0)
        if zone.per_mile_fee is not None:
            if distance is None:
                warning = "delivery distance unknown, per-mile fee not applied"
            else:
                cost += float(zone.per_mile_fee) * max(0.0, distance - float(zone.min_distance or 0))

    estimate = estimate or warning is not None
    if estimate:
        acc.is_estimate = True
    acc.warn("delivery", warning)
    return DeliveryLine(
        is_delivery=True,
        zone_id=zone.id if zone else None,
        zone_name=zone.name if zone else None,
        distance_miles=round(distance, 2) if distance is not None else None,
        duration_minutes=round(minutes, 1) if minutes is not None else None,
        cost=_money(cost),
        is_estimate=estimate,
        warning=warning,
    ), cost


def _cost_topper(doc: CalculationRequest, config: PricingConfig, acc: _Rollup) -> tuple[TopperLine, float]:
    if not doc.topper_type:
        return TopperLine(), 0.0
    key = _topper_key(doc.topper_type)
    fee = config.topper_fees.get(key)
    if fee is None:
        warning = f"unknown topper type {doc.topper_type!r}"
        acc.warn("topper", warning)
        return TopperLine(topper_type=doc.topper_type, topper_text=doc.topper_text, warning=warning), 0.0
    cost = float(fee)
    if key == "custom":
        cost += float(doc.custom_topper_fee or 0)
    return TopperLine(topper_type=key, topper_text=doc.topper_text, cost=_money(cost)), cost


def _cost_packaging(doc: CalculationRequest, catalog: CatalogSnapshot,
                    acc: _Rollup) -> tuple[list[PackagingLine], float]:
    lines = []
    total = 0.0
    for i, p in enumerate(doc.packaging):
        pkg = catalog.packaging.get(p.packaging_id)
        if pkg is None:
            msg = f"packaging {p.packaging_id} not found"
            acc.warn(f"packaging {i}", msg)
            lines.append(PackagingLine(packaging_id=p.packaging_id, quantity=p.quantity,
                                       item_index=p.item_index, warning=msg))
            continue
        cost = float(pkg.cost_per_unit or 0) * p.quantity
        total += cost
        lines.append(PackagingLine(packaging_id=pkg.id, name=pkg.name, quantity=p.quantity,
                                   item_index=p.item_index, cost=_money(cost)))
    return lines, total


def _price_products(doc: CalculationRequest, catalog: CatalogSnapshot,
                    acc: _Rollup) -> tuple[list[ProductLine], float]:
    lines = []
    total = 0.0
    for i, item in enumerate(doc.items):
        menu = catalog.menu_items.get(item.menu_item_id) if item.menu_item_id else None
        product_type_id = item.product_type_id or (menu.product_type_id if menu else None)
        ptype = catalog.product_types.get(product_type_id) if product_type_id else None
        name = menu.name if menu else (ptype.name if ptype else None)

        if item.menu_item_id and menu is None and item.unit_price is None:
            msg = f"menu item {item.menu_item_id} not found"
            acc.warn(f"item {i}", msg)
            lines.append(ProductLine(menu_item_id=item.menu_item_id, product_type_id=product_type_id,
                                     quantity=item.quantity, warning=msg, is_estimate=True))
            continue

        base = item.unit_price if item.unit_price is not None else float(menu.base_price or 0)
        menu_item_id = menu.id if menu else None
        scoped = []
        skipped = []
        for bp in catalog.breakpoints:
            if not ((menu_item_id and bp.menu_item_id == menu_item_id)
                    or (product_type_id and bp.product_type_id == product_type_id)):
                continue
            try:
                volume_pricing.validate_breakpoint(bp)
            except InvalidInputError as e:
                skipped.append(f"breakpoint {bp.id} ignored: {e}")
                continue
            scoped.append(bp)
        warning = "; ".join(skipped) or None
        if warning:
            logger.warning("item %d: %s", i, warning)
            acc.warn(f"item {i}", warning)
        vp = volume_pricing.price(scoped, item.quantity, base, menu_item_id, product_type_id)
        total += vp.discounted_price
        lines.append(ProductLine(
            menu_item_id=item.menu_item_id,
            product_type_id=product_type_id,
            name=name,
            quantity=item.quantity,
            unit_price=_money(base),
            original_price=_money(vp.original_price),
            discounted_price=_money(vp.discounted_price),
            discount_percent=round(vp.discount_percent, 2),
            savings=_money(vp.savings),
            applied_breakpoint_id=vp.applied_breakpoint.id if vp.applied_breakpoint else None,
            warning=warning,
            is_estimate=warning is not None,
        ))
    return lines, total


def compute_costing(
    doc: CalculationRequest,
    catalog: CatalogSnapshot,
    config: PricingConfig,
    distance_provider: Optional[DistanceProvider] = None,
    kind: DocumentKind = "order",
) -> CostingResult:
    """Full cost and price breakdown for a draft order or quote.

    Pure over ``catalog``: nothing is written. Missing catalog references
    contribute zero, are itemized with a warning, and mark the result as an
    estimate; a total is always returned. Amounts are rounded only here, on
    the way out.
    """
    acc = _Rollup()
    tiers, servings = _cost_tiers(doc, catalog, config, acc)
    decorations, dec_material, dec_labor = _cost_decorations(doc, catalog, config, acc)
    delivery, delivery_cost = _cost_delivery(doc, catalog, config, distance_provider, acc)
    topper, topper_cost = _cost_topper(doc, config, acc)
    packaging, packaging_cost = _cost_packaging(doc, catalog, acc)
    products, products_total = _price_products(doc, catalog, acc)

    manual_labor = (float(doc.baker_hours or 0) * config.baker_rate
                    + float(doc.assistant_hours or 0) * config.assistant_rate)
    labor = acc.recipe_labor + acc.assembly_labor + manual_labor
    total_cost = (acc.ingredient_cost + labor + dec_material + dec_labor
                  + delivery_cost + topper_cost + packaging_cost)

    markup = doc.markup_percent if doc.markup_percent is not None else config.markup_percent
    discount = (doc.discount.type, doc.discount.value) if doc.discount else None
    adjustment = doc.price_adjustment if kind == "order" else None
    summary = finalize(total_cost, markup, discount, adjustment, servings)

    ingredients = []
    for ing_id, qty in acc.ingredient_qty.items():
        ing = catalog.ingredients[ing_id]
        cpu = float(ing.cost_per_unit or 0)
        ingredients.append(IngredientLine(
            ingredient_id=ing_id, name=ing.name, unit=ing.unit,
            quantity=round(qty, 3), cost_per_unit=cpu, cost=_money(qty * cpu),
        ))
    ingredients.sort(key=lambda l: (l.name.lower(), l.ingredient_id))

    return CostingResult(
        kind=kind,
        servings=servings,
        tiers=tiers,
        ingredients=ingredients,
        decorations=decorations,
        delivery=delivery,
        topper=topper,
        packaging=packaging,
        products=products,
        ingredient_cost=_money(acc.ingredient_cost),
        recipe_labor_cost=_money(acc.recipe_labor),
        assembly_labor_cost=_money(acc.assembly_labor),
        manual_labor_cost=_money(manual_labor),
        labor_cost=_money(labor),
        decoration_material_cost=_money(dec_material),
        decoration_labor_cost=_money(dec_labor),
        delivery_cost=_money(delivery_cost),
        topper_cost=_money(topper_cost),
        packaging_cost=_money(packaging_cost),
        total_cost=_money(total_cost),
        markup_percent=float(markup),
        suggested_price=summary.suggested_price,
        markup_amount=summary.markup_amount,
        discount_amount=summary.discount_amount,
        manual_adjustment=summary.manual_adjustment,
        final_price=summary.final_price,
        price_per_serving=summary.price_per_serving,
        products_total=_money(products_total),
        grand_total=_money(summary.final_price + products_total),
        warnings=acc.warnings,
        is_estimate=acc.is_estimate,
    )


def preview(db: Session, doc: CalculationRequest, kind: DocumentKind = "order",
            distance_provider: Optional[DistanceProvider] = None,
            config: Optional[PricingConfig] = None) -> CostingResult:
    """Snapshot the catalog and settings, then cost ``doc`` without saving."""
    return compute_costing(
        doc,
        CatalogSnapshot.from_session(db),
        config or load_pricing_config(db),
        distance_provider,
        kind,
    )


def finalize_order_costing(
    db: Session,
    order_id: str,
    distance_provider: Optional[DistanceProvider] = None,
    config: Optional[PricingConfig] = None,
    actor: str = "system",
) -> OrderCosting:
    """Cost a persisted order and save the breakdown against it.

    Saves for one order are serialized in-process; across processes the
    order's ``version`` column is checked and bumped, and a stale save
    raises ``ConflictError``.
    """
    with _order_lock(order_id):
        order = db.get(CakeOrder, order_id)
        if not order or order.deleted_at is not None:
            raise NotFoundError("order", order_id)
        seen_version = order.version

        doc = to_request(db, order, "order")
        result = preview(db, doc, "order", distance_provider, config)

        try:
            bumped = db.execute(
                update(CakeOrder)
                .where(CakeOrder.id == order_id, CakeOrder.version == seen_version)
                .values(version=seen_version + 1)
            )
            if bumped.rowcount != 1:
                raise ConflictError(f"order {order_id} changed while its costing was calculated")

            costing = db.query(OrderCosting).filter(OrderCosting.order_id == order_id).first()
            before = None
            if costing is None:
                costing = OrderCosting(order_id=order_id)
                db.add(costing)
            else:
                before = {"total_cost": float(costing.total_cost), "final_price": float(costing.final_price),
                          "order_version": costing.order_version}
            costing.order_version = seen_version + 1
            costing.breakdown = result.model_dump(mode="json")
            costing.total_cost = result.total_cost
            costing.suggested_price = result.suggested_price
            costing.final_price = result.final_price
            costing.is_estimate = result.is_estimate
            costing.calculated_at = datetime.now(timezone.utc)
            audit(db, actor, "CakeOrder", order_id, "COSTING_SAVED", before=before,
                  after={"total_cost": result.total_cost, "final_price": result.final_price,
                         "order_version": seen_version + 1})
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(costing)
        logger.info("saved costing for order %s: total_cost=%s final_price=%s estimate=%s",
                    order_id, result.total_cost, result.final_price, result.is_estimate)
        return costing


def get_order_costing(db: Session, order_id: str) -> Optional[OrderCosting]:
    if not db.get(CakeOrder, order_id):
        raise NotFoundError("order", order_id)
    return db.query(OrderCosting).filter(OrderCosting.order_id == order_id).first()
