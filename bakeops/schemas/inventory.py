from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class LotOut(BaseModel):
    id: str
    lot_number: Optional[str] = None
    quantity: float
    produced_at: datetime
    expires_at: Optional[datetime] = None


class StockLevelOut(BaseModel):
    sku: str
    name: str
    unit: str
    quantity: float
    min_stock: float
    is_low_stock: bool
    lot_count: int
    oldest_lot_produced_at: Optional[datetime] = None
    oldest_lot_expires_at: Optional[datetime] = None
    lots: list[LotOut] = []


class ConsumeIn(BaseModel):
    quantity: float = Field(gt=0)
    reason: Optional[str] = None


class LotDraw(BaseModel):
    lot_id: str
    lot_number: Optional[str] = None
    quantity: float
    remaining: float


class ConsumeOut(BaseModel):
    sku: str
    requested: float
    draws: list[LotDraw]
    remaining_stock: float


class LotIn(BaseModel):
    quantity: float = Field(gt=0)
    produced_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    lot_number: Optional[str] = None
