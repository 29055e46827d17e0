from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from bakeops.errors import InvalidInputError
from bakeops.models.core import VolumeBreakpoint


class BreakpointOut(BaseModel):
    id: Optional[str] = None
    min_quantity: int
    max_quantity: Optional[int] = None
    discount_percent: float = 0
    price_per_unit: Optional[float] = None


class VolumePrice(BaseModel):
    original_price: float
    discounted_price: float
    discount_percent: float
    savings: float
    applied_breakpoint: Optional[BreakpointOut] = None


def _out(bp) -> BreakpointOut:
    return BreakpointOut(
        id=getattr(bp, "id", None),
        min_quantity=int(bp.min_quantity),
        max_quantity=int(bp.max_quantity) if bp.max_quantity is not None else None,
        discount_percent=float(bp.discount_percent or 0),
        price_per_unit=float(bp.price_per_unit) if bp.price_per_unit is not None else None,
    )


def validate_breakpoint(bp) -> None:
    if bool(bp.menu_item_id) == bool(bp.product_type_id):
        raise InvalidInputError("breakpoint must be scoped to exactly one of menu item or product type")
    if bp.min_quantity is None or bp.min_quantity < 0:
        raise InvalidInputError("breakpoint min_quantity must be a non-negative integer")
    if bp.max_quantity is not None and bp.max_quantity < bp.min_quantity:
        raise InvalidInputError("breakpoint max_quantity must be >= min_quantity")
    if (bp.discount_percent or 0) < 0 or (bp.discount_percent or 0) > 100:
        raise InvalidInputError("breakpoint discount_percent must be between 0 and 100")
    if bp.price_per_unit is not None and bp.price_per_unit < 0:
        raise InvalidInputError("breakpoint price_per_unit must be non-negative")


def price(
    breakpoints: Iterable,
    quantity: int,
    base_price: float,
    menu_item_id: Optional[str] = None,
    product_type_id: Optional[str] = None,
) -> VolumePrice:
    """Price ``quantity`` units at ``base_price`` with the tightest matching band.

    Breakpoints are scoped to the menu item when one is given, otherwise to the
    product type. Among active candidates with ``min_quantity <= quantity`` the
    highest ``min_quantity`` whose ``max_quantity`` is open or covers the
    quantity wins. ``price_per_unit`` takes precedence over ``discount_percent``.
    """
    if quantity is None or quantity <= 0:
        raise InvalidInputError("quantity must be positive")
    if base_price is None or base_price < 0:
        raise InvalidInputError("base_price must be non-negative")

    breakpoints = list(breakpoints)
    for bp in breakpoints:
        validate_breakpoint(bp)

    original = Decimal(str(base_price)) * quantity
    unchanged = VolumePrice(
        original_price=float(original),
        discounted_price=float(original),
        discount_percent=0.0,
        savings=0.0,
    )

    if menu_item_id:
        scoped = [bp for bp in breakpoints if bp.menu_item_id == menu_item_id]
    elif product_type_id:
        scoped = [bp for bp in breakpoints if bp.product_type_id == product_type_id]
    else:
        return unchanged

    candidates = sorted(
        (bp for bp in scoped if bp.is_active and bp.min_quantity <= quantity),
        key=lambda bp: bp.min_quantity,
        reverse=True,
    )
    winner = next((bp for bp in candidates if bp.max_quantity is None or bp.max_quantity >= quantity), None)
    if winner is None:
        return unchanged

    if winner.price_per_unit is not None:
        discounted = Decimal(str(winner.price_per_unit)) * quantity
        pct = (original - discounted) / original * 100 if original else Decimal(0)
    else:
        pct = Decimal(str(winner.discount_percent or 0))
        discounted = original * (1 - pct / 100)

    return VolumePrice(
        original_price=float(original),
        discounted_price=float(discounted),
        discount_percent=float(pct),
        savings=float(original - discounted),
        applied_breakpoint=_out(winner),
    )


def load_breakpoints(db: Session, menu_item_id: str | None = None, product_type_id: str | None = None) -> list[VolumeBreakpoint]:
    q = db.query(VolumeBreakpoint).filter(VolumeBreakpoint.deleted_at.is_(None))
    if menu_item_id:
        q = q.filter(VolumeBreakpoint.menu_item_id == menu_item_id)
    elif product_type_id:
        q = q.filter(VolumeBreakpoint.product_type_id == product_type_id)
    else:
        return []
    return q.order_by(VolumeBreakpoint.min_quantity.asc()).all()


def breakpoint_tiers(db: Session, menu_item_id: str | None = None, product_type_id: str | None = None) -> list[BreakpointOut]:
    """Active bands for display, lowest quantity first."""
    return [_out(bp) for bp in load_breakpoints(db, menu_item_id, product_type_id) if bp.is_active]
