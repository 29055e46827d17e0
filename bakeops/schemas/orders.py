from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import date, datetime

from bakeops.models.core import OrderStatus
from bakeops.schemas.costing import CalculationRequest


class OrderIn(CalculationRequest):
    customer_name: str = Field(min_length=1)
    event_date: date


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: OrderStatus
    customer_name: str
    event_date: date
    event_type: Optional[str] = None
    is_delivery: bool = False
    quote_id: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    version: int


class OrderDetailOut(OrderOut):
    document: CalculationRequest


class PrepSignoffIn(BaseModel):
    signed_by: str = Field(min_length=1)
    manager_notes: Optional[str] = None


class PrepSignoffOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    signed_by: str
    signed_at: datetime
    manager_notes: Optional[str] = None
