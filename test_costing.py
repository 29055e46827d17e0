import pytest
from sqlalchemy import update

from bakeops.errors import ConflictError, NotFoundError
from bakeops.models import AuditLog, CakeOrder, OrderCosting, Recipe, VolumeBreakpoint
from bakeops.schemas.costing import CalculationRequest
from bakeops.schemas.orders import OrderIn
from bakeops.services import costing
from bakeops.services.distance import DistanceResult
from bakeops.services.orders import create_order
from bakeops.services.pricing import PricingConfig

CONFIG = PricingConfig(markup_percent=0.5, baker_rate=25, decorator_rate=35, assistant_rate=18)


def calc(db, kind="order", config=CONFIG, provider=None, **doc):
    doc.setdefault("tiers", [{"tier_index": 0, "tier_size_id": "tier-8"}])
    return costing.preview(db, CalculationRequest(**doc), kind, provider, config)


def test_single_tier_with_size_defaults(db, seeded):
    r = calc(db)

    # sponge x2: 6.20*2 = 12.40; buttercream x4: 4.00*4 = 16.00
    assert r.ingredient_cost == 28.4
    # sponge 60 min + buttercream 80 min at $30/h
    assert r.recipe_labor_cost == 70.0
    assert r.assembly_labor_cost == 15.0
    assert r.labor_cost == 85.0
    assert r.total_cost == 113.4
    assert r.suggested_price == 170.1
    assert r.final_price == 170.1
    assert r.servings == 24
    assert r.price_per_serving == 7.09
    assert r.is_estimate is False
    assert r.warnings == []

    assert [l.name for l in r.ingredients] == ["Butter", "Eggs", "Flour", "Sugar"]
    by_name = {l.name: l for l in r.ingredients}
    assert by_name["Butter"].quantity == 1400
    assert by_name["Sugar"].quantity == 2800

    tier = r.tiers[0]
    assert tier.total_cost == 113.4
    assert [c.component for c in tier.components] == ["batter", "filling", "frosting"]
    assert tier.components[0].multiplier == 2.0


def test_markup_from_config_when_document_has_none(db, seeded):
    r = calc(db, config=PricingConfig(markup_percent=1.0))
    assert r.markup_percent == 1.0
    assert r.suggested_price == 226.8


def test_document_markup_overrides_config(db, seeded):
    r = calc(db, markup_percent=0.0)
    assert r.final_price == r.total_cost


def test_two_tiers_with_decorations(db, seeded):
    r = calc(db, tiers=[
        {"tier_index": 0, "tier_size_id": "tier-8"},
        {"tier_index": 1, "tier_size_id": "tier-6"},
    ], decorations=[
        {"decoration_technique_id": "dec-flowers", "quantity": 3},
        {"decoration_technique_id": "dec-gold", "quantity": 1},
    ])
    assert r.servings == 36
    # flowers 3 x $5; gold band $3 on each of 2 tiers
    assert r.decoration_material_cost == 21.0
    # flowers 45 min at the decorator role's $40/h; gold 20 min at the $35/h default
    assert r.decoration_labor_cost == 41.67
    gold = r.decorations[1]
    assert gold.unit == "TIER"
    assert gold.effective_quantity == 2
    assert not r.is_estimate


def test_tier_decoration_on_listed_tiers_only(db, seeded):
    r = calc(db, tiers=[
        {"tier_index": 0, "tier_size_id": "tier-8"},
        {"tier_index": 1, "tier_size_id": "tier-6"},
    ], decorations=[
        {"decoration_technique_id": "dec-gold", "tier_indices": [1, 5]},
    ])
    gold = r.decorations[0]
    assert gold.effective_quantity == 1
    assert gold.material_cost == 3.0
    assert gold.is_estimate
    assert r.is_estimate


def test_decoration_cost_override_and_unit_override(db, seeded):
    r = calc(db, decorations=[
        {"decoration_technique_id": "dec-gold", "quantity": 2, "unit_override": "EACH", "cost_override": 4.5},
    ])
    assert r.decorations[0].effective_quantity == 2
    assert r.decoration_material_cost == 9.0


@pytest.mark.parametrize("miles,zone,fee", [
    (5, "zone-local", 15.0),
    (15, "zone-ext", 27.5),
    (30, "zone-far", 60.0),
])
def test_delivery_by_distance(db, seeded, miles, zone, fee):
    r = calc(db, is_delivery=True, delivery_distance=miles)
    assert r.delivery.zone_id == zone
    assert r.delivery_cost == fee
    assert not r.delivery.is_estimate
    assert r.total_cost == pytest.approx(113.4 + fee)


class FixedDistance:
    def __init__(self, miles, is_estimate=False):
        self.miles = miles
        self.is_estimate = is_estimate
        self.calls = 0

    def distance(self, origin, dest):
        self.calls += 1
        return DistanceResult(self.miles, 25.0, self.is_estimate)


def test_delivery_distance_from_provider(db, seeded):
    provider = FixedDistance(12)
    cfg = CONFIG.model_copy(update={"bakery_lat": 40.0, "bakery_lng": -75.0})
    r = calc(db, config=cfg, provider=provider, is_delivery=True, delivery_lat=40.1, delivery_lng=-75.1)
    assert provider.calls == 1
    assert r.delivery.zone_id == "zone-ext"
    assert r.delivery_cost == 23.0
    assert r.delivery.duration_minutes == 25.0
    assert not r.is_estimate


def test_straight_line_distance_marks_estimate(db, seeded):
    cfg = CONFIG.model_copy(update={"bakery_lat": 40.0, "bakery_lng": -75.0})
    r = calc(db, config=cfg, provider=FixedDistance(3, is_estimate=True),
             is_delivery=True, delivery_lat=40.01, delivery_lng=-75.0)
    assert r.delivery_cost == 15.0
    assert r.delivery.is_estimate
    assert r.is_estimate


def test_delivery_without_bakery_location(db, seeded):
    r = calc(db, is_delivery=True, delivery_lat=40.1, delivery_lng=-75.1)
    assert r.delivery_cost == 0
    assert r.delivery.warning == "bakery location is not configured"
    assert r.is_estimate


def test_explicit_zone_without_distance_charges_base_fee(db, seeded):
    r = calc(db, is_delivery=True, delivery_zone_id="zone-ext")
    assert r.delivery_cost == 20.0
    assert r.delivery.is_estimate
    assert "per-mile" in r.delivery.warning


def test_toppers(db, seeded):
    assert calc(db, topper_type="It's a Boy").topper_cost == 10.0
    custom = calc(db, topper_type="custom", custom_topper_fee=12.5)
    assert custom.topper_cost == 12.5
    unknown = calc(db, topper_type="Unicorn")
    assert unknown.topper_cost == 0
    assert unknown.topper.warning
    assert unknown.is_estimate


def test_manual_labor_and_packaging(db, seeded):
    r = calc(db, baker_hours=2, assistant_hours=1, packaging=[{"packaging_id": "pkg-box", "quantity": 2}])
    assert r.manual_labor_cost == 68.0
    assert r.labor_cost == 153.0
    assert r.packaging_cost == 5.0
    assert r.total_cost == pytest.approx(186.4)


def test_products_priced_separately_from_cake(db, seeded):
    r = calc(db, items=[{"product_type_id": "pt-cupcake", "quantity": 30, "unit_price": 2.0}])
    assert r.total_cost == 113.4
    assert r.products_total == 45.0
    assert r.products[0].applied_breakpoint_id == "bp-24"
    assert r.grand_total == pytest.approx(215.1)


def test_menu_item_uses_only_its_own_breakpoints(db, seeded):
    # the seeded bands belong to the product type, so the menu item pays list price
    r = calc(db, items=[{"menu_item_id": "mi-vanilla-cupcake", "quantity": 30}])
    assert r.products[0].name == "Vanilla Cupcake"
    assert r.products[0].unit_price == 2.0
    assert r.products[0].applied_breakpoint_id is None
    assert r.products_total == 60.0


def test_custom_product_price(db, seeded):
    r = calc(db, items=[{"product_type_id": "pt-cupcake", "quantity": 12, "unit_price": 3.0}])
    assert r.products_total == 32.4


def test_discount_and_adjustment(db, seeded):
    r = calc(db, discount={"type": "PERCENT", "value": 10}, price_adjustment=-5.1)
    assert r.discount_amount == 17.01
    assert r.manual_adjustment == -5.1
    assert r.final_price == 147.99


def test_quotes_ignore_manual_adjustment(db, seeded):
    r = calc(db, kind="quote", price_adjustment=50)
    assert r.kind == "quote"
    assert r.manual_adjustment == 0
    assert r.final_price == 170.1


def test_missing_references_still_produce_a_total(db, seeded):
    r = calc(db, tiers=[
        {"tier_index": 0, "tier_size_id": "tier-8"},
        {"tier_index": 1, "tier_size_id": "no-such-size"},
    ], decorations=[{"decoration_technique_id": "no-such-deco"}],
        packaging=[{"packaging_id": "no-such-box"}])
    assert r.total_cost == 113.4
    assert r.is_estimate
    assert any("no-such-size" in w for w in r.warnings)
    assert any("no-such-deco" in w for w in r.warnings)
    assert any("no-such-box" in w for w in r.warnings)


def test_unknown_labor_role_uses_default_rate(db, seeded):
    db.get(Recipe, "rec-vanilla").labor_role_id = "ghost"
    db.commit()
    r = calc(db)
    # sponge labor drops from 60 min at $30 to 60 min at the $25 default
    assert r.recipe_labor_cost == 65.0
    assert r.is_estimate
    assert any("ghost" in w for w in r.warnings)


def _order(db, seeded, **doc):
    doc.setdefault("tiers", [{"tier_index": 0, "tier_size_id": "tier-8"}])
    req = OrderIn(customer_name="Dana", event_date=seeded.event_date, markup_percent=0.5, **doc)
    return create_order(db, req, actor="tester")


def test_finalize_saves_costing_and_bumps_version(db, seeded):
    order = _order(db, seeded)
    assert order.version == 1

    c = costing.finalize_order_costing(db, order.id, config=CONFIG, actor="tester")
    assert c.order_version == 2
    assert float(c.total_cost) == 113.4
    assert float(c.final_price) == 170.1
    assert c.breakdown["total_cost"] == 113.4
    assert c.is_estimate is False

    c = costing.finalize_order_costing(db, order.id, config=CONFIG)
    assert c.order_version == 3
    assert db.query(OrderCosting).filter(OrderCosting.order_id == order.id).count() == 1
    assert db.get(CakeOrder, order.id).version == 3

    actions = [a.action for a in db.query(AuditLog).filter(AuditLog.entity_id == order.id)]
    assert actions.count("COSTING_SAVED") == 2


def test_finalize_rejects_a_stale_order(db, seeded, monkeypatch):
    order = _order(db, seeded)
    real_preview = costing.preview

    def racing_preview(session, *args, **kwargs):
        result = real_preview(session, *args, **kwargs)
        # someone else saves the order while we were calculating
        session.execute(update(CakeOrder).where(CakeOrder.id == order.id).values(version=CakeOrder.version + 1))
        return result

    monkeypatch.setattr(costing, "preview", racing_preview)
    with pytest.raises(ConflictError):
        costing.finalize_order_costing(db, order.id, config=CONFIG)
    assert db.query(OrderCosting).filter(OrderCosting.order_id == order.id).first() is None


def test_finalize_missing_order(db, seeded):
    with pytest.raises(NotFoundError):
        costing.finalize_order_costing(db, "nope", config=CONFIG)
    with pytest.raises(NotFoundError):
        costing.get_order_costing(db, "nope")


def test_finalize_releases_order_locks(db, seeded):
    for _ in range(3):
        costing.finalize_order_costing(db, _order(db, seeded).id, config=CONFIG)
    with pytest.raises(NotFoundError):
        costing.finalize_order_costing(db, "nope", config=CONFIG)
    assert costing._locks == {}


def test_ingredient_cost_never_drops_as_multiplier_grows(db, seeded):
    costs = []
    for m in (0.25, 0.5, 1.0, 1.5, 2.0, 4.0):
        r = calc(db, tiers=[{"tier_index": 0, "tier_size_id": "tier-8",
                             "batter_recipe_id": "rec-vanilla", "batter_multiplier": m}])
        costs.append(r.ingredient_cost)
    assert costs == sorted(costs)
    assert costs[0] < costs[-1]


def test_bad_breakpoint_row_is_skipped_with_a_warning(db, seeded):
    db.add(VolumeBreakpoint(id="bp-both", menu_item_id="mi-vanilla-cupcake", product_type_id="pt-cupcake",
                            min_quantity=1, discount_percent=50))
    db.commit()

    r = calc(db, items=[{"product_type_id": "pt-cupcake", "quantity": 30, "unit_price": 2.0},
                        {"menu_item_id": "mi-vanilla-cupcake", "quantity": 30}])
    typed, menu = r.products
    assert typed.applied_breakpoint_id == "bp-24"
    assert typed.discounted_price == 45.0
    assert menu.discounted_price == 60.0
    for line in r.products:
        assert line.is_estimate
        assert "bp-both" in line.warning
    assert r.is_estimate
    assert r.products_total == 105.0
    assert r.total_cost == 113.4
