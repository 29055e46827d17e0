from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal
from datetime import date, datetime

from bakeops.models.core import QuoteStatus
from bakeops.schemas.costing import CalculationRequest


class QuoteIn(CalculationRequest):
    customer_name: str = Field(min_length=1)
    event_date: date


class QuoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    quote_number: str
    status: QuoteStatus
    revision_version: int
    original_quote_id: Optional[str] = None
    customer_name: str
    event_date: date
    event_type: Optional[str] = None
    created_at: Optional[datetime] = None


class QuoteDetailOut(QuoteOut):
    is_latest: bool
    document: CalculationRequest


class QuoteStatusIn(BaseModel):
    status: Literal["DRAFT", "SENT", "ACCEPTED", "DECLINED"]
