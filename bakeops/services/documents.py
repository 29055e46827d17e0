"""Mapping between persisted orders/quotes and calculation documents.

Orders and quotes share their selection columns and child row shapes (see
``bakeops.models.common``), so one set of helpers serves both, and a quote
copies into a revision or an order column by column.
"""
from decimal import Decimal
from typing import Literal

from sqlalchemy.orm import Session

from bakeops.models.common import (
    DiscountType, SelectionMixin, TierFieldsMixin, DecorationFieldsMixin,
    ItemFieldsMixin, PackagingFieldsMixin,
)
from bakeops.models.core import (
    OrderTier, OrderDecoration, OrderItem, OrderPackaging,
    QuoteTier, QuoteDecoration, QuoteItem, QuotePackaging,
)
from bakeops.schemas.costing import CalculationRequest, TierIn, DecorationIn, ItemIn, PackagingIn, DiscountIn

Kind = Literal["order", "quote"]

SELECTION_FIELDS = tuple(SelectionMixin.__annotations__)
TIER_FIELDS = tuple(TierFieldsMixin.__annotations__)
DECORATION_FIELDS = tuple(DecorationFieldsMixin.__annotations__)
ITEM_FIELDS = tuple(ItemFieldsMixin.__annotations__) + ("position",)
PACKAGING_FIELDS = tuple(PackagingFieldsMixin.__annotations__)

# kind -> (tier, decoration, item, packaging models, parent fk column)
CHILD_MODELS = {
    "order": (OrderTier, OrderDecoration, OrderItem, OrderPackaging, "order_id"),
    "quote": (QuoteTier, QuoteDecoration, QuoteItem, QuotePackaging, "quote_id"),
}


def _plain(v):
    return float(v) if isinstance(v, Decimal) else v


def _fields(row, names) -> dict:
    return {n: _plain(getattr(row, n)) for n in names}


def load_children(db: Session, kind: Kind, parent_id: str):
    """``(tiers, decorations, items, packaging)`` rows of one order or quote."""
    Tier, Dec, Item, Pack, fk = CHILD_MODELS[kind]

    def rows(model, *order_by):
        return (db.query(model)
                  .filter(getattr(model, fk) == parent_id, model.deleted_at.is_(None))
                  .order_by(*order_by)
                  .all())

    return (
        rows(Tier, Tier.tier_index),
        rows(Dec, Dec.created_at, Dec.id),
        rows(Item, Item.position, Item.id),
        rows(Pack, Pack.created_at, Pack.id),
    )


def to_request(db: Session, parent, kind: Kind) -> CalculationRequest:
    tiers, decorations, items, packaging = load_children(db, kind, parent.id)
    header = {n: _plain(getattr(parent, n)) for n in SELECTION_FIELDS if not n.startswith("discount_")}
    discount = None
    if parent.discount_type is not None:
        discount = DiscountIn(
            type=parent.discount_type.value,
            value=_plain(parent.discount_value) or 0,
            reason=parent.discount_reason,
        )
    return CalculationRequest(
        **header,
        discount=discount,
        price_adjustment=_plain(parent.price_adjustment) if kind == "order" else None,
        tiers=[TierIn(**_fields(t, TIER_FIELDS)) for t in tiers],
        decorations=[DecorationIn(**_fields(d, DECORATION_FIELDS)) for d in decorations],
        items=[ItemIn(**_fields(i, ItemFieldsMixin.__annotations__)) for i in items],
        packaging=[PackagingIn(**_fields(p, PACKAGING_FIELDS)) for p in packaging],
    )


def apply_selections(parent, req: CalculationRequest, kind: Kind) -> None:
    for name in SELECTION_FIELDS:
        if name.startswith("discount_"):
            continue
        setattr(parent, name, getattr(req, name))
    d = req.discount
    parent.discount_type = DiscountType(d.type) if d else None
    parent.discount_value = d.value if d else None
    parent.discount_reason = d.reason if d else None
    if kind == "order":
        parent.price_adjustment = req.price_adjustment


def add_children(db: Session, kind: Kind, parent_id: str, req: CalculationRequest) -> None:
    Tier, Dec, Item, Pack, fk = CHILD_MODELS[kind]
    for t in req.tiers:
        db.add(Tier(**{fk: parent_id}, **t.model_dump()))
    for d in req.decorations:
        db.add(Dec(**{fk: parent_id}, **d.model_dump()))
    for pos, i in enumerate(req.items):
        db.add(Item(**{fk: parent_id}, position=pos, **i.model_dump()))
    for p in req.packaging:
        db.add(Pack(**{fk: parent_id}, **p.model_dump()))


def copy_selections(src, dst) -> None:
    for name in SELECTION_FIELDS:
        setattr(dst, name, getattr(src, name))


def copy_children(db: Session, src_kind: Kind, src_id: str, dst_kind: Kind, dst_id: str) -> int:
    """Duplicate every child row under a new parent (new ids, same values)."""
    src_rows = load_children(db, src_kind, src_id)
    Tier, Dec, Item, Pack, fk = CHILD_MODELS[dst_kind]
    copied = 0
    for rows, model, names in zip(
        src_rows,
        (Tier, Dec, Item, Pack),
        (TIER_FIELDS, DECORATION_FIELDS, ITEM_FIELDS, PACKAGING_FIELDS),
    ):
        for row in rows:
            values = {n: getattr(row, n) for n in names}
            if values.get("tier_indices"):
                values["tier_indices"] = list(values["tier_indices"])
            db.add(model(**{fk: dst_id}, **values))
            copied += 1
    return copied
