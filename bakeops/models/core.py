from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Enum, Text, DateTime, Date, Integer, JSON,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column
from enum import Enum as PyEnum
from datetime import date, datetime
from bakeops.db import Base
from bakeops.models.common import (
    IdMixin, TSMMixin, SelectionMixin, TierFieldsMixin, DecorationFieldsMixin,
    ItemFieldsMixin, PackagingFieldsMixin,
)

# ── Enums ───────────────────────────────────────────────────────────────────
class RecipeType(PyEnum):
    BATTER = "BATTER"
    FILLING = "FILLING"
    FROSTING = "FROSTING"

class DecorationUnit(PyEnum):
    EACH = "EACH"
    TIER = "TIER"   # quantity is multiplied by the number of tiers it covers
    CAKE = "CAKE"
    SET = "SET"

class OrderStatus(PyEnum):
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

class QuoteStatus(PyEnum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    CONVERTED = "CONVERTED"

class TaskStatus(PyEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    BLOCKED = "BLOCKED"

class TaskType(PyEnum):
    BAKE = "BAKE"
    PREP = "PREP"
    COOL = "COOL"
    STACK = "STACK"
    FROST = "FROST"
    FINAL = "FINAL"
    PACKAGE = "PACKAGE"
    DELIVERY = "DELIVERY"

class SignoffType(PyEnum):
    START = "START"
    COMPLETE = "COMPLETE"

# ── Labor & ingredients ─────────────────────────────────────────────────────
class LaborRole(Base, IdMixin, TSMMixin):
    __tablename__ = "labor_role"
    name: Mapped[str] = mapped_column(String(80), unique=True)  # Baker | Decorator | Bakery Assistant
    hourly_rate: Mapped[float] = mapped_column(Numeric(8, 2))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class Ingredient(Base, IdMixin, TSMMixin):
    __tablename__ = "ingredient"
    name: Mapped[str] = mapped_column(String(160))
    unit: Mapped[str] = mapped_column(String(20))  # g, ml, each
    cost_per_unit: Mapped[float] = mapped_column(Numeric(12, 5), default=0)

class Vendor(Base, IdMixin, TSMMixin):
    __tablename__ = "vendor"
    name: Mapped[str] = mapped_column(String(160))
    website: Mapped[str | None] = mapped_column(String(300))

class IngredientVendor(Base, IdMixin, TSMMixin):
    __tablename__ = "ingredient_vendor"
    ingredient_id: Mapped[str] = mapped_column(String(36), ForeignKey("ingredient.id"))
    vendor_id: Mapped[str] = mapped_column(String(36), ForeignKey("vendor.id"))
    vendor_sku: Mapped[str | None] = mapped_column(String(60))
    pack_size: Mapped[float] = mapped_column(Numeric(12, 3))   # in the ingredient's unit
    pack_unit: Mapped[str | None] = mapped_column(String(20))
    price_per_pack: Mapped[float] = mapped_column(Numeric(10, 2))
    is_preferred: Mapped[bool] = mapped_column(Boolean, default=False)
    reorder_url: Mapped[str | None] = mapped_column(String(400))

# ── Recipes & tier sizes ────────────────────────────────────────────────────
class Recipe(Base, IdMixin, TSMMixin):
    __tablename__ = "recipe"
    name: Mapped[str] = mapped_column(String(160))
    type: Mapped[RecipeType] = mapped_column(Enum(RecipeType))
    yield_volume_ml: Mapped[float | None] = mapped_column(Numeric(10, 2))
    labor_minutes: Mapped[int] = mapped_column(Integer, default=0)
    labor_role_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("labor_role.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class RecipeIngredient(Base, TSMMixin):
    __tablename__ = "recipe_ingredient"
    recipe_id: Mapped[str] = mapped_column(String(36), ForeignKey("recipe.id"), primary_key=True)
    ingredient_id: Mapped[str] = mapped_column(String(36), ForeignKey("ingredient.id"), primary_key=True)
    quantity: Mapped[float] = mapped_column(Numeric(12, 3))  # per one yield batch

class TierSize(Base, IdMixin, TSMMixin):
    __tablename__ = "tier_size"
    name: Mapped[str] = mapped_column(String(80))  # e.g. "8 inch round"
    shape: Mapped[str] = mapped_column(String(20), default="Round")
    volume_ml: Mapped[float | None] = mapped_column(Numeric(10, 2))
    servings: Mapped[int] = mapped_column(Integer, default=0)
    batter_recipe_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("recipe.id"))
    batter_multiplier: Mapped[float | None] = mapped_column(Numeric(8, 4))
    frosting_recipe_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("recipe.id"))
    frosting_multiplier: Mapped[float | None] = mapped_column(Numeric(8, 4))
    assembly_minutes: Mapped[int] = mapped_column(Integer, default=0)
    assembly_role_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("labor_role.id"))

# ── Decorations, packaging, delivery ────────────────────────────────────────
class DecorationTechnique(Base, IdMixin, TSMMixin):
    __tablename__ = "decoration_technique"
    sku: Mapped[str] = mapped_column(String(40))
    name: Mapped[str] = mapped_column(String(160))
    category: Mapped[str | None] = mapped_column(String(60))
    unit: Mapped[DecorationUnit] = mapped_column(Enum(DecorationUnit), default=DecorationUnit.EACH)
    default_cost_per_unit: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    labor_minutes: Mapped[int] = mapped_column(Integer, default=0)
    labor_role_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("labor_role.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class Packaging(Base, IdMixin, TSMMixin):
    __tablename__ = "packaging"
    name: Mapped[str] = mapped_column(String(120))
    cost_per_unit: Mapped[float] = mapped_column(Numeric(10, 2), default=0)

class DeliveryZone(Base, IdMixin, TSMMixin):
    __tablename__ = "delivery_zone"
    name: Mapped[str] = mapped_column(String(80))
    min_distance: Mapped[float] = mapped_column(Numeric(8, 2), default=0)   # miles, inclusive
    max_distance: Mapped[float | None] = mapped_column(Numeric(8, 2))       # miles, exclusive; None = open
    base_fee: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    per_mile_fee: Mapped[float | None] = mapped_column(Numeric(10, 2))      # None => flat base fee
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

# ── Menu & volume pricing ───────────────────────────────────────────────────
class ProductType(Base, IdMixin, TSMMixin):
    __tablename__ = "product_type"
    name: Mapped[str] = mapped_column(String(80))  # Cupcakes, Cookies, Cake Pops

class MenuItem(Base, IdMixin, TSMMixin):
    __tablename__ = "menu_item"
    name: Mapped[str] = mapped_column(String(160))
    product_type_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("product_type.id"))
    base_price: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    yields_per_recipe: Mapped[int] = mapped_column(Integer, default=1)
    batter_recipe_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("recipe.id"))
    filling_recipe_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("recipe.id"))
    frosting_recipe_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("recipe.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class VolumeBreakpoint(Base, IdMixin, TSMMixin):
    __tablename__ = "volume_breakpoint"
    menu_item_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("menu_item.id"))
    product_type_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("product_type.id"))
    min_quantity: Mapped[int] = mapped_column(Integer)
    max_quantity: Mapped[int | None] = mapped_column(Integer)
    discount_percent: Mapped[float] = mapped_column(Numeric(5, 2), default=0)
    price_per_unit: Mapped[float | None] = mapped_column(Numeric(10, 2))  # wins over discount_percent
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    __table_args__ = (
        CheckConstraint("max_quantity IS NULL OR max_quantity >= min_quantity", name="ck_volume_breakpoint_band"),
    )

# ── Settings ────────────────────────────────────────────────────────────────
class Setting(Base, TSMMixin):
    __tablename__ = "setting"
    key: Mapped[str] = mapped_column(String(80), primary_key=True)  # MarkupPercent, BakerHourlyRate, TopperFees...
    value: Mapped[str] = mapped_column(Text)

# ── Orders ──────────────────────────────────────────────────────────────────
class CakeOrder(Base, IdMixin, TSMMixin, SelectionMixin):
    __tablename__ = "cake_order"
    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus), default=OrderStatus.DRAFT)
    price_adjustment: Mapped[float | None] = mapped_column(Numeric(10, 2))  # signed, orders only
    quote_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("quote.id"))
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

class OrderTier(Base, IdMixin, TSMMixin, TierFieldsMixin):
    __tablename__ = "order_tier"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("cake_order.id"))
    __table_args__ = (UniqueConstraint("order_id", "tier_index", name="uq_order_tier_index"),)

class OrderDecoration(Base, IdMixin, TSMMixin, DecorationFieldsMixin):
    __tablename__ = "order_decoration"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("cake_order.id"))

class OrderItem(Base, IdMixin, TSMMixin, ItemFieldsMixin):
    __tablename__ = "order_item"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("cake_order.id"))
    position: Mapped[int] = mapped_column(Integer, default=0)

class OrderPackaging(Base, IdMixin, TSMMixin, PackagingFieldsMixin):
    __tablename__ = "order_packaging"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("cake_order.id"))

class OrderCosting(Base, IdMixin, TSMMixin):
    __tablename__ = "order_costing"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("cake_order.id"), unique=True)
    order_version: Mapped[int] = mapped_column(Integer)  # CakeOrder.version the breakdown was saved against
    breakdown: Mapped[dict] = mapped_column(JSON)
    total_cost: Mapped[float] = mapped_column(Numeric(12, 2))
    suggested_price: Mapped[float] = mapped_column(Numeric(12, 2))
    final_price: Mapped[float] = mapped_column(Numeric(12, 2))
    is_estimate: Mapped[bool] = mapped_column(Boolean, default=False)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

class OrderPrepSignoff(Base, IdMixin, TSMMixin):
    __tablename__ = "order_prep_signoff"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("cake_order.id"), unique=True)
    signed_by: Mapped[str] = mapped_column(String(120))
    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    manager_notes: Mapped[str | None] = mapped_column(Text)

# ── Quotes & revision chains ────────────────────────────────────────────────
class Quote(Base, IdMixin, TSMMixin, SelectionMixin):
    __tablename__ = "quote"
    quote_number: Mapped[str] = mapped_column(String(60), unique=True)
    status: Mapped[QuoteStatus] = mapped_column(Enum(QuoteStatus), default=QuoteStatus.DRAFT)
    # TSMMixin.version is the row version; revision_version is the place in the chain
    revision_version: Mapped[int] = mapped_column(Integer, default=1)
    original_quote_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("quote.id"))  # chain root, None on the root
    __table_args__ = (Index("ix_quote_original_quote_id", "original_quote_id"),)

class QuoteTier(Base, IdMixin, TSMMixin, TierFieldsMixin):
    __tablename__ = "quote_tier"
    quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quote.id"))
    __table_args__ = (UniqueConstraint("quote_id", "tier_index", name="uq_quote_tier_index"),)

class QuoteDecoration(Base, IdMixin, TSMMixin, DecorationFieldsMixin):
    __tablename__ = "quote_decoration"
    quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quote.id"))

class QuoteItem(Base, IdMixin, TSMMixin, ItemFieldsMixin):
    __tablename__ = "quote_item"
    quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quote.id"))
    position: Mapped[int] = mapped_column(Integer, default=0)

class QuotePackaging(Base, IdMixin, TSMMixin, PackagingFieldsMixin):
    __tablename__ = "quote_packaging"
    quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quote.id"))

class QuoteChain(Base, TSMMixin):
    __tablename__ = "quote_chain"
    root_quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quote.id"), primary_key=True)
    latest_quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quote.id"))
    latest_version: Mapped[int] = mapped_column(Integer, default=1)

# ── Production ──────────────────────────────────────────────────────────────
class ProductionTask(Base, IdMixin, TSMMixin):
    __tablename__ = "production_task"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("cake_order.id"))
    task_type: Mapped[TaskType] = mapped_column(Enum(TaskType))
    task_name: Mapped[str] = mapped_column(String(160))
    position: Mapped[int] = mapped_column(Integer, default=0)
    scheduled_date: Mapped[date] = mapped_column(Date)
    duration_minutes: Mapped[int] = mapped_column(Integer)
    status: Mapped[TaskStatus] = mapped_column(Enum(TaskStatus), default=TaskStatus.PENDING)
    assigned_to: Mapped[str | None] = mapped_column(String(120))
    depends_on_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("production_task.id"))  # primary predecessor
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_by: Mapped[str | None] = mapped_column(String(120))
    __table_args__ = (UniqueConstraint("order_id", "task_type", name="uq_production_task_type"),)

class TaskDependency(Base, TSMMixin):
    __tablename__ = "task_dependency"
    task_id: Mapped[str] = mapped_column(String(36), ForeignKey("production_task.id"), primary_key=True)
    predecessor_id: Mapped[str] = mapped_column(String(36), ForeignKey("production_task.id"), primary_key=True)

class TaskSignoff(Base, IdMixin, TSMMixin):
    __tablename__ = "task_signoff"
    task_id: Mapped[str] = mapped_column(String(36), ForeignKey("production_task.id"))
    signoff_type: Mapped[SignoffType] = mapped_column(Enum(SignoffType))
    signed_by: Mapped[str] = mapped_column(String(120))
    notes: Mapped[str | None] = mapped_column(Text)
    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

# ── Inventory ───────────────────────────────────────────────────────────────
class InventoryItem(Base, IdMixin, TSMMixin):
    __tablename__ = "inventory_item"
    sku: Mapped[str] = mapped_column(String(60), unique=True)
    name: Mapped[str] = mapped_column(String(160))
    unit: Mapped[str] = mapped_column(String(20), default="each")
    min_stock: Mapped[float] = mapped_column(Numeric(12, 3), default=0)

class InventoryLot(Base, IdMixin, TSMMixin):
    __tablename__ = "inventory_lot"
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_item.id"))
    lot_number: Mapped[str | None] = mapped_column(String(60))
    quantity: Mapped[float] = mapped_column(Numeric(12, 3))
    produced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

# ── Audit ───────────────────────────────────────────────────────────────────
class AuditLog(Base, IdMixin, TSMMixin):
    __tablename__ = "audit_log"
    actor: Mapped[str] = mapped_column(String(120))
    entity: Mapped[str] = mapped_column(String(60))
    entity_id: Mapped[str] = mapped_column(String(36))
    action: Mapped[str] = mapped_column(String(60))
    reason: Mapped[str | None] = mapped_column(Text)
    before: Mapped[str | None] = mapped_column(Text)
    after: Mapped[str | None] = mapped_column(Text)
