import logging
import math
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from bakeops.errors import NotFoundError, InvalidInputError
from bakeops.models.core import CakeOrder
from bakeops.schemas.shopping import ShoppingListItem, VendorShoppingGroup, ShoppingListOut
from bakeops.services.catalog import CatalogSnapshot
from bakeops.services.documents import load_children
from bakeops.services.pricing import _money
from bakeops.services.recipe_resolver import resolve_tier

logger = logging.getLogger(__name__)


def _add_recipe(totals: dict[str, float], catalog: CatalogSnapshot, recipe_id: str, times: float,
                warnings: list[str], where: str) -> None:
    for ri in catalog.recipe_ingredients.get(recipe_id, []):
        if ri.ingredient_id not in catalog.ingredients:
            warnings.append(f"{where}: ingredient {ri.ingredient_id} not found")
            continue
        totals[ri.ingredient_id] = totals.get(ri.ingredient_id, 0.0) + float(ri.quantity) * times


def _pick_vendor(catalog: CatalogSnapshot, ingredient_id: str):
    links = [l for l in catalog.ingredient_vendors.get(ingredient_id, []) if l.vendor_id in catalog.vendors]
    if not links:
        return None
    # preferred first, then the cheapest pack
    links.sort(key=lambda l: (not l.is_preferred, float(l.price_per_pack or 0), l.id))
    return links[0]


def generate_shopping_list(db: Session, order_ids: list[str]) -> ShoppingListOut:
    """Ingredient demand across ``order_ids``, grouped by the vendor to buy from.

    Tiers are resolved the same way costing resolves them (quantity times
    multiplier); menu items add whole recipe batches.
    """
    if not order_ids:
        raise InvalidInputError("order_ids must not be empty")
    order_ids = list(dict.fromkeys(order_ids))
    orders = []
    for oid in order_ids:
        o = db.get(CakeOrder, oid)
        if not o or o.deleted_at is not None:
            raise NotFoundError("order", oid)
        orders.append(o)

    catalog = CatalogSnapshot.from_session(db)
    totals: dict[str, float] = {}
    warnings: list[str] = []

    for o in orders:
        tiers, _, items, _ = load_children(db, "order", o.id)
        for tier in tiers:
            tier_size = catalog.tier_sizes.get(tier.tier_size_id) if tier.tier_size_id else None
            for name, rc in resolve_tier(tier, tier_size, catalog).items():
                where = f"order {o.id} tier {tier.tier_index} {name}"
                if rc.warning:
                    warnings.append(f"{where}: {rc.warning}")
                if rc.recipe is not None:
                    _add_recipe(totals, catalog, rc.recipe.id, rc.multiplier, warnings, where)

        for item in items:
            menu = catalog.menu_items.get(item.menu_item_id) if item.menu_item_id else None
            if menu is None:
                continue
            batches = math.ceil(item.quantity / max(int(menu.yields_per_recipe or 1), 1))
            for recipe_id in (menu.batter_recipe_id, menu.filling_recipe_id, menu.frosting_recipe_id):
                if not recipe_id:
                    continue
                if recipe_id not in catalog.recipes:
                    warnings.append(f"order {o.id} item {menu.name}: recipe {recipe_id} not found")
                    continue
                _add_recipe(totals, catalog, recipe_id, batches, warnings, f"order {o.id} item {menu.name}")

    groups: dict[str, list[ShoppingListItem]] = {}
    unlinked: list[ShoppingListItem] = []
    for ingredient_id, qty in totals.items():
        ing = catalog.ingredients[ingredient_id]
        link = _pick_vendor(catalog, ingredient_id)
        line = ShoppingListItem(
            ingredient_id=ingredient_id,
            ingredient_name=ing.name,
            ingredient_unit=ing.unit,
            total_quantity_needed=round(qty, 3),
        )
        if link is None:
            unlinked.append(line)
            continue
        pack_size = float(link.pack_size or 0)
        # pack sizes are assumed to be in the ingredient's own unit
        packs = math.ceil(round(qty, 6) / pack_size) if pack_size > 0 else None
        line.vendor_id = link.vendor_id
        line.vendor_name = catalog.vendors[link.vendor_id].name
        line.vendor_sku = link.vendor_sku
        line.pack_size = pack_size
        line.pack_unit = link.pack_unit
        line.price_per_pack = float(link.price_per_pack)
        line.packs_needed = packs
        line.estimated_cost = _money(packs * float(link.price_per_pack)) if packs is not None else None
        line.reorder_url = link.reorder_url
        groups.setdefault(link.vendor_id, []).append(line)

    vendor_groups = []
    for vendor_id, lines in groups.items():
        lines.sort(key=lambda l: l.ingredient_name.lower())
        vendor_groups.append(VendorShoppingGroup(
            vendor_id=vendor_id,
            vendor_name=catalog.vendors[vendor_id].name,
            items=lines,
            total_estimated_cost=_money(sum(l.estimated_cost or 0 for l in lines)),
        ))
    vendor_groups.sort(key=lambda g: (g.vendor_name.lower(), g.vendor_id))
    unlinked.sort(key=lambda l: l.ingredient_name.lower())

    logger.info("shopping list for %d orders: %d ingredients, %d unlinked",
                len(orders), len(totals), len(unlinked))
    return ShoppingListOut(
        order_ids=order_ids,
        order_count=len(orders),
        generated_at=datetime.now(timezone.utc).isoformat(),
        vendor_groups=vendor_groups,
        grand_total=_money(sum(g.total_estimated_cost for g in vendor_groups)),
        unlinked_ingredients=unlinked,
        warnings=warnings,
    )
