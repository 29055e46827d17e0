import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from bakeops.errors import NotFoundError, InvalidInputError
from bakeops.models.core import InventoryItem, InventoryLot
from bakeops.schemas.inventory import LotOut, StockLevelOut, LotDraw, ConsumeOut
from bakeops.util.audit import audit

logger = logging.getLogger(__name__)


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; they were stored as UTC
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _q3(x) -> Decimal:
    return Decimal(str(x)).quantize(Decimal("0.001"))


def get_item(db: Session, sku: str) -> InventoryItem:
    item = (db.query(InventoryItem)
              .filter(InventoryItem.sku == sku, InventoryItem.deleted_at.is_(None))
              .first())
    if not item:
        raise NotFoundError("inventory item", sku)
    return item


def available_lots(db: Session, item: InventoryItem, as_of: Optional[datetime] = None) -> list[InventoryLot]:
    """Unexpired lots with stock left, oldest first."""
    as_of = _aware(as_of) or datetime.now(timezone.utc)
    lots = (db.query(InventoryLot)
              .filter(InventoryLot.item_id == item.id,
                      InventoryLot.quantity > 0,
                      InventoryLot.deleted_at.is_(None))
              .all())
    live = [l for l in lots if l.expires_at is None or _aware(l.expires_at) > as_of]
    return sorted(live, key=lambda l: (_aware(l.produced_at), l.id))


def lot_out(l: InventoryLot) -> LotOut:
    return LotOut(id=l.id, lot_number=l.lot_number, quantity=float(l.quantity),
                  produced_at=_aware(l.produced_at), expires_at=_aware(l.expires_at))


def stock_level(db: Session, sku: str, as_of: Optional[datetime] = None) -> StockLevelOut:
    item = get_item(db, sku)
    lots = available_lots(db, item, as_of)
    total = sum((_q3(l.quantity) for l in lots), Decimal(0))
    oldest = lots[0] if lots else None
    return StockLevelOut(
        sku=item.sku,
        name=item.name,
        unit=item.unit,
        quantity=float(total),
        min_stock=float(item.min_stock or 0),
        is_low_stock=total <= _q3(item.min_stock or 0),
        lot_count=len(lots),
        oldest_lot_produced_at=_aware(oldest.produced_at) if oldest else None,
        oldest_lot_expires_at=_aware(oldest.expires_at) if oldest else None,
        lots=[lot_out(l) for l in lots],
    )


def consume_fifo(db: Session, sku: str, quantity: float, as_of: Optional[datetime] = None,
                 actor: str = "system", reason: str | None = None) -> ConsumeOut:
    """Draw ``quantity`` from the oldest unexpired lots.

    All or nothing: a request larger than the available stock changes no lot.
    """
    wanted = _q3(quantity)
    if wanted <= 0:
        raise InvalidInputError("quantity must be positive")
    item = get_item(db, sku)
    lots = available_lots(db, item, as_of)
    available = sum((_q3(l.quantity) for l in lots), Decimal(0))
    if wanted > available:
        raise InvalidInputError(f"insufficient stock for {sku}: requested {wanted}, available {available}")

    draws = []
    left = wanted
    try:
        for lot in lots:
            if left <= 0:
                break
            take = min(_q3(lot.quantity), left)
            lot.quantity = _q3(lot.quantity) - take
            left -= take
            draws.append(LotDraw(lot_id=lot.id, lot_number=lot.lot_number,
                                 quantity=float(take), remaining=float(lot.quantity)))
        audit(db, actor, "InventoryItem", item.id, "CONSUME", reason=reason,
              after={"sku": sku, "quantity": float(wanted), "lots": [d.lot_id for d in draws]})
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("consumed %s %s of %s from %d lots", wanted, item.unit, sku, len(draws))
    return ConsumeOut(sku=sku, requested=float(wanted), draws=draws, remaining_stock=float(available - wanted))


def add_lot(db: Session, sku: str, quantity: float, produced_at: Optional[datetime] = None,
            expires_at: Optional[datetime] = None, lot_number: str | None = None,
            actor: str = "system") -> InventoryLot:
    if quantity <= 0:
        raise InvalidInputError("quantity must be positive")
    item = get_item(db, sku)
    produced_at = _aware(produced_at) or datetime.now(timezone.utc)
    if expires_at is not None and _aware(expires_at) <= produced_at:
        raise InvalidInputError("expires_at must be after produced_at")
    lot = InventoryLot(item_id=item.id, quantity=_q3(quantity), produced_at=produced_at,
                       expires_at=expires_at, lot_number=lot_number)
    db.add(lot)
    audit(db, actor, "InventoryItem", item.id, "ADD_LOT", after={"quantity": float(quantity), "lot_number": lot_number})
    db.commit()
    db.refresh(lot)
    return lot
