from pydantic import BaseModel, Field, model_validator
from typing import Optional, Literal
from datetime import date

DiscountTypeLiteral = Literal["PERCENT", "FIXED"]
DecorationUnitLiteral = Literal["EACH", "TIER", "CAKE", "SET"]
DocumentKind = Literal["order", "quote"]


# ── Calculation document (draft order / quote) ─────────────────────────────
class TierIn(BaseModel):
    tier_index: int = Field(ge=0)
    tier_size_id: Optional[str] = None
    batter_recipe_id: Optional[str] = None
    batter_multiplier: Optional[float] = Field(default=None, gt=0)
    filling_recipe_id: Optional[str] = None
    filling_multiplier: Optional[float] = Field(default=None, gt=0)
    frosting_recipe_id: Optional[str] = None
    frosting_multiplier: Optional[float] = Field(default=None, gt=0)
    flavor: Optional[str] = None
    filling: Optional[str] = None
    finish: Optional[str] = None
    finish_type: Optional[str] = None
    color: Optional[str] = None


class DecorationIn(BaseModel):
    decoration_technique_id: str
    quantity: float = Field(default=1, ge=0)
    unit_override: Optional[DecorationUnitLiteral] = None
    cost_override: Optional[float] = Field(default=None, ge=0)
    tier_indices: Optional[list[int]] = None
    notes: Optional[str] = None


class ItemIn(BaseModel):
    menu_item_id: Optional[str] = None
    product_type_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    unit_price: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _needs_product(self):
        if not self.menu_item_id and not self.product_type_id:
            raise ValueError("item needs menu_item_id or product_type_id")
        if not self.menu_item_id and self.unit_price is None:
            raise ValueError("unit_price is required when no menu item is given")
        return self


class PackagingIn(BaseModel):
    packaging_id: str
    quantity: int = Field(default=1, ge=1)
    item_index: Optional[int] = Field(default=None, ge=0)


class DiscountIn(BaseModel):
    type: DiscountTypeLiteral
    value: float = Field(ge=0)
    reason: Optional[str] = None


class CalculationRequest(BaseModel):
    customer_name: Optional[str] = None
    event_date: Optional[date] = None
    event_type: Optional[str] = None
    notes: Optional[str] = None

    tiers: list[TierIn] = []
    decorations: list[DecorationIn] = []
    items: list[ItemIn] = []
    packaging: list[PackagingIn] = []

    is_delivery: bool = False
    delivery_zone_id: Optional[str] = None
    delivery_distance: Optional[float] = Field(default=None, ge=0)
    delivery_lat: Optional[float] = None
    delivery_lng: Optional[float] = None
    delivery_address: Optional[str] = None

    baker_hours: Optional[float] = Field(default=None, ge=0)
    assistant_hours: Optional[float] = Field(default=None, ge=0)

    topper_type: Optional[str] = None
    topper_text: Optional[str] = None
    custom_topper_fee: Optional[float] = Field(default=None, ge=0)

    markup_percent: Optional[float] = Field(default=None, ge=0)
    discount: Optional[DiscountIn] = None
    price_adjustment: Optional[float] = None  # signed; ignored for quotes

    @model_validator(mode="after")
    def _contiguous_tiers(self):
        indices = sorted(t.tier_index for t in self.tiers)
        if len(indices) != len(set(indices)):
            raise ValueError("tier_index values must be unique")
        if indices and indices != list(range(indices[0], indices[0] + len(indices))):
            raise ValueError("tier_index values must be contiguous")
        if indices and indices[0] not in (0, 1):
            raise ValueError("tier_index must start at 0 or 1")
        for i, p in enumerate(self.packaging):
            if p.item_index is not None and p.item_index >= len(self.items):
                raise ValueError(f"packaging[{i}].item_index does not match an item")
        return self


# ── Costing breakdown ──────────────────────────────────────────────────────
class ComponentLine(BaseModel):
    component: Literal["batter", "filling", "frosting"]
    recipe_id: Optional[str] = None
    recipe_name: Optional[str] = None
    selector: Optional[str] = None   # explicit | keyword | tier_default
    multiplier: float = 0
    ingredient_cost: float = 0
    labor_cost: float = 0
    is_estimate: bool = False
    warning: Optional[str] = None


class TierCostLine(BaseModel):
    tier_index: int
    tier_size_id: Optional[str] = None
    tier_size_name: Optional[str] = None
    servings: int = 0
    components: list[ComponentLine] = []
    ingredient_cost: float = 0
    recipe_labor_cost: float = 0
    assembly_labor_cost: float = 0
    total_cost: float = 0
    is_estimate: bool = False
    warning: Optional[str] = None


class IngredientLine(BaseModel):
    ingredient_id: str
    name: str
    unit: str
    quantity: float
    cost_per_unit: float
    cost: float


class DecorationLine(BaseModel):
    decoration_technique_id: str
    sku: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    quantity: float = 0
    effective_quantity: float = 0
    material_cost: float = 0
    labor_minutes: float = 0
    labor_cost: float = 0
    total_cost: float = 0
    is_estimate: bool = False
    warning: Optional[str] = None


class DeliveryLine(BaseModel):
    is_delivery: bool = False
    zone_id: Optional[str] = None
    zone_name: Optional[str] = None
    distance_miles: Optional[float] = None
    duration_minutes: Optional[float] = None
    cost: float = 0
    is_estimate: bool = False
    warning: Optional[str] = None


class TopperLine(BaseModel):
    topper_type: Optional[str] = None
    topper_text: Optional[str] = None
    cost: float = 0
    warning: Optional[str] = None


class PackagingLine(BaseModel):
    packaging_id: str
    name: Optional[str] = None
    quantity: int = 0
    item_index: Optional[int] = None
    cost: float = 0
    warning: Optional[str] = None


class ProductLine(BaseModel):
    menu_item_id: Optional[str] = None
    product_type_id: Optional[str] = None
    name: Optional[str] = None
    quantity: int
    unit_price: float = 0
    original_price: float = 0
    discounted_price: float = 0
    discount_percent: float = 0
    savings: float = 0
    applied_breakpoint_id: Optional[str] = None
    warning: Optional[str] = None
    is_estimate: bool = False


class CostingResult(BaseModel):
    kind: DocumentKind
    servings: int = 0
    tiers: list[TierCostLine] = []
    ingredients: list[IngredientLine] = []
    decorations: list[DecorationLine] = []
    delivery: DeliveryLine = DeliveryLine()
    topper: TopperLine = TopperLine()
    packaging: list[PackagingLine] = []
    products: list[ProductLine] = []

    ingredient_cost: float = 0
    recipe_labor_cost: float = 0
    assembly_labor_cost: float = 0
    manual_labor_cost: float = 0
    labor_cost: float = 0
    decoration_material_cost: float = 0
    decoration_labor_cost: float = 0
    delivery_cost: float = 0
    topper_cost: float = 0
    packaging_cost: float = 0
    total_cost: float = 0

    markup_percent: float = 0
    suggested_price: float = 0
    markup_amount: float = 0
    discount_amount: float = 0
    manual_adjustment: float = 0
    final_price: float = 0
    price_per_serving: Optional[float] = None
    products_total: float = 0
    grand_total: float = 0

    warnings: list[str] = []
    is_estimate: bool = False


class OrderCostingOut(BaseModel):
    order_id: str
    order_version: int
    calculated_at: str
    costing: CostingResult
