from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import datetime

from bakeops.db import get_db
from bakeops.deps import get_actor
from bakeops.schemas.inventory import StockLevelOut, ConsumeIn, ConsumeOut, LotIn, LotOut
from bakeops.services import inventory

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("/{sku}/stock", response_model=StockLevelOut)
def stock(sku: str, as_of: datetime | None = None, db: Session = Depends(get_db)):
    return inventory.stock_level(db, sku, as_of)


@router.post("/{sku}/consume", response_model=ConsumeOut)
def consume(sku: str, body: ConsumeIn, as_of: datetime | None = None,
            db: Session = Depends(get_db), actor: str = Depends(get_actor)):
    return inventory.consume_fifo(db, sku, body.quantity, as_of, actor, body.reason)


@router.post("/{sku}/lots", response_model=LotOut)
def add_lot(sku: str, body: LotIn, db: Session = Depends(get_db), actor: str = Depends(get_actor)):
    lot = inventory.add_lot(db, sku, body.quantity, body.produced_at, body.expires_at, body.lot_number, actor)
    return inventory.lot_out(lot)
