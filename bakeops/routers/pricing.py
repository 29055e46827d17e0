from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bakeops.db import get_db
from bakeops.errors import NotFoundError
from bakeops.models.core import MenuItem
from bakeops.schemas.volume import VolumePriceIn
from bakeops.services import volume_pricing
from bakeops.services.volume_pricing import VolumePrice, BreakpointOut

router = APIRouter(prefix="/volume-pricing", tags=["pricing"])


@router.post("/price", response_model=VolumePrice)
def price(body: VolumePriceIn, db: Session = Depends(get_db)):
    base_price = body.base_price
    product_type_id = body.product_type_id
    if body.menu_item_id:
        m = db.get(MenuItem, body.menu_item_id)
        if not m:
            raise NotFoundError("menu item", body.menu_item_id)
        if base_price is None:
            base_price = float(m.base_price or 0)
        product_type_id = product_type_id or m.product_type_id
    bps = volume_pricing.load_breakpoints(db, body.menu_item_id, product_type_id)
    return volume_pricing.price(bps, body.quantity, base_price, body.menu_item_id, product_type_id)


@router.get("/breakpoints", response_model=list[BreakpointOut])
def breakpoints(menu_item_id: str | None = None, product_type_id: str | None = None, db: Session = Depends(get_db)):
    return volume_pricing.breakpoint_tiers(db, menu_item_id, product_type_id)
