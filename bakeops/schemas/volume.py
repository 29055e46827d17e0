from pydantic import BaseModel, Field, model_validator
from typing import Optional


class VolumePriceIn(BaseModel):
    menu_item_id: Optional[str] = None
    product_type_id: Optional[str] = None
    quantity: int = Field(gt=0)
    base_price: Optional[float] = Field(default=None, ge=0)  # defaults to the menu item's price

    @model_validator(mode="after")
    def _needs_price(self):
        if not self.menu_item_id and self.base_price is None:
            raise ValueError("base_price is required when no menu item is given")
        return self
