import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from bakeops.errors import NotFoundError, InvalidTransitionError
from bakeops.models.core import CakeOrder, OrderStatus, OrderCosting
from bakeops.schemas.costing import CalculationRequest
from bakeops.services.costing import finalize_order_costing
from bakeops.services.distance import DistanceProvider
from bakeops.services.documents import apply_selections, add_children
from bakeops.util.audit import audit

logger = logging.getLogger(__name__)


def get_order(db: Session, order_id: str) -> CakeOrder:
    o = db.get(CakeOrder, order_id)
    if not o or o.deleted_at is not None:
        raise NotFoundError("order", order_id)
    return o


def create_order(db: Session, req: CalculationRequest, actor: str = "system") -> CakeOrder:
    o = CakeOrder(status=OrderStatus.DRAFT)
    apply_selections(o, req, "order")
    try:
        db.add(o)
        db.flush()
        add_children(db, "order", o.id, req)
        audit(db, actor, "CakeOrder", o.id, "CREATE", after={"customer_name": o.customer_name})
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(o)
    logger.info("created draft order %s for %s", o.id, o.customer_name)
    return o


def confirm_order(db: Session, order_id: str, actor: str = "system",
                  distance_provider: Optional[DistanceProvider] = None) -> OrderCosting:
    """DRAFT -> CONFIRMED, then save the order's costing."""
    o = get_order(db, order_id)
    if o.status != OrderStatus.DRAFT:
        raise InvalidTransitionError(f"order {order_id} is {o.status.value}, only DRAFT orders can be confirmed")
    o.status = OrderStatus.CONFIRMED
    o.confirmed_at = datetime.now(timezone.utc)
    o.version = o.version + 1
    audit(db, actor, "CakeOrder", o.id, "CONFIRM", before={"status": "DRAFT"}, after={"status": "CONFIRMED"})
    db.commit()
    logger.info("confirmed order %s", order_id)
    return finalize_order_costing(db, order_id, distance_provider, actor=actor)
