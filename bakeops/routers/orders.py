from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from bakeops.db import get_db
from bakeops.deps import get_actor, get_distance_provider, get_pricing_config
from bakeops.models.core import OrderCosting
from bakeops.schemas.costing import CalculationRequest, CostingResult, OrderCostingOut
from bakeops.schemas.orders import OrderIn, OrderOut, OrderDetailOut, PrepSignoffIn, PrepSignoffOut
from bakeops.services import costing, orders, production
from bakeops.services.distance import DistanceProvider
from bakeops.services.documents import to_request
from bakeops.services.pricing import PricingConfig

router = APIRouter(prefix="/orders", tags=["orders"])


def _costing_out(c: OrderCosting) -> OrderCostingOut:
    return OrderCostingOut(
        order_id=c.order_id,
        order_version=c.order_version,
        calculated_at=c.calculated_at.isoformat(),
        costing=CostingResult.model_validate(c.breakdown),
    )


@router.post("/calculate", response_model=CostingResult)
def calculate(
    body: CalculationRequest,
    db: Session = Depends(get_db),
    config: PricingConfig = Depends(get_pricing_config),
    provider: DistanceProvider = Depends(get_distance_provider),
):
    """Live pricing for a draft order; nothing is saved."""
    return costing.preview(db, body, "order", provider, config)


@router.post("/", response_model=OrderOut)
def create_order(body: OrderIn, db: Session = Depends(get_db), actor: str = Depends(get_actor)):
    return orders.create_order(db, body, actor)


@router.get("/{order_id}", response_model=OrderDetailOut)
def get_order(order_id: str, db: Session = Depends(get_db)):
    o = orders.get_order(db, order_id)
    out = OrderOut.model_validate(o)
    return OrderDetailOut(**out.model_dump(), document=to_request(db, o, "order"))


@router.post("/{order_id}/confirm", response_model=OrderCostingOut)
def confirm_order(
    order_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    provider: DistanceProvider = Depends(get_distance_provider),
):
    return _costing_out(orders.confirm_order(db, order_id, actor, provider))


@router.post("/{order_id}/costing", response_model=OrderCostingOut)
def save_costing(
    order_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    config: PricingConfig = Depends(get_pricing_config),
    provider: DistanceProvider = Depends(get_distance_provider),
):
    return _costing_out(costing.finalize_order_costing(db, order_id, provider, config, actor))


@router.get("/{order_id}/costing", response_model=OrderCostingOut)
def get_costing(order_id: str, db: Session = Depends(get_db)):
    c = costing.get_order_costing(db, order_id)
    if not c:
        raise HTTPException(404, detail="costing not found")
    return _costing_out(c)


@router.post("/{order_id}/prep-review", response_model=PrepSignoffOut)
def prep_review(order_id: str, body: PrepSignoffIn, db: Session = Depends(get_db)):
    return production.prep_signoff(db, order_id, body.signed_by, body.manager_notes)


@router.get("/{order_id}/prep-review", response_model=PrepSignoffOut)
def get_prep_review(order_id: str, db: Session = Depends(get_db)):
    s = production.get_prep_signoff(db, order_id)
    if not s:
        raise HTTPException(404, detail="prep review not found")
    return s
