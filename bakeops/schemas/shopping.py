from pydantic import BaseModel, Field
from typing import Optional


class ShoppingListIn(BaseModel):
    order_ids: list[str] = Field(min_length=1)


class ShoppingListItem(BaseModel):
    ingredient_id: str
    ingredient_name: str
    ingredient_unit: str
    total_quantity_needed: float

    # preferred vendor, else the cheapest pack
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    vendor_sku: Optional[str] = None
    pack_size: Optional[float] = None
    pack_unit: Optional[str] = None
    price_per_pack: Optional[float] = None
    packs_needed: Optional[int] = None
    estimated_cost: Optional[float] = None
    reorder_url: Optional[str] = None


class VendorShoppingGroup(BaseModel):
    vendor_id: str
    vendor_name: str
    items: list[ShoppingListItem]
    total_estimated_cost: float


class ShoppingListOut(BaseModel):
    order_ids: list[str]
    order_count: int
    generated_at: str
    vendor_groups: list[VendorShoppingGroup]
    grand_total: float
    unlinked_ingredients: list[ShoppingListItem]
    warnings: list[str] = []
