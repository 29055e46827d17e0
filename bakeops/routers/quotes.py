from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bakeops.db import get_db
from bakeops.deps import get_actor, get_distance_provider, get_pricing_config
from bakeops.models.core import QuoteStatus
from bakeops.schemas.costing import CalculationRequest, CostingResult
from bakeops.schemas.orders import OrderOut
from bakeops.schemas.quotes import QuoteIn, QuoteOut, QuoteDetailOut, QuoteStatusIn
from bakeops.services import costing, quotes
from bakeops.services.distance import DistanceProvider
from bakeops.services.documents import to_request
from bakeops.services.pricing import PricingConfig

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("/calculate", response_model=CostingResult)
def calculate(
    body: CalculationRequest,
    db: Session = Depends(get_db),
    config: PricingConfig = Depends(get_pricing_config),
    provider: DistanceProvider = Depends(get_distance_provider),
):
    # quotes never carry a manual price adjustment
    return costing.preview(db, body, "quote", provider, config)


@router.post("/", response_model=QuoteOut)
def create_quote(body: QuoteIn, db: Session = Depends(get_db), actor: str = Depends(get_actor)):
    return quotes.create_quote(db, body, actor)


@router.get("/{quote_id}", response_model=QuoteDetailOut)
def get_quote(quote_id: str, db: Session = Depends(get_db)):
    q = quotes.get_quote(db, quote_id)
    out = QuoteOut.model_validate(q)
    return QuoteDetailOut(
        **out.model_dump(),
        is_latest=quotes.latest_in_chain(db, quote_id).id == q.id,
        document=to_request(db, q, "quote"),
    )


@router.get("/{quote_id}/costing", response_model=CostingResult)
def quote_costing(
    quote_id: str,
    db: Session = Depends(get_db),
    config: PricingConfig = Depends(get_pricing_config),
    provider: DistanceProvider = Depends(get_distance_provider),
):
    q = quotes.get_quote(db, quote_id)
    return costing.preview(db, to_request(db, q, "quote"), "quote", provider, config)


@router.post("/{quote_id}/revise", response_model=QuoteOut)
def revise_quote(quote_id: str, db: Session = Depends(get_db), actor: str = Depends(get_actor)):
    return quotes.revise_quote(db, quote_id, actor)


@router.get("/{quote_id}/revisions", response_model=list[QuoteOut])
def revisions(quote_id: str, db: Session = Depends(get_db)):
    return quotes.quote_chain(db, quote_id)


@router.post("/{quote_id}/status", response_model=QuoteOut)
def set_status(quote_id: str, body: QuoteStatusIn, db: Session = Depends(get_db), actor: str = Depends(get_actor)):
    return quotes.set_quote_status(db, quote_id, QuoteStatus(body.status), actor)


@router.post("/{quote_id}/convert", response_model=OrderOut)
def convert(
    quote_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    provider: DistanceProvider = Depends(get_distance_provider),
):
    return quotes.convert_quote(db, quote_id, actor, provider)
