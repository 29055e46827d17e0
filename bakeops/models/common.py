import uuid
from sqlalchemy import String, DateTime, Date, Integer, Boolean, Numeric, Text, Enum, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from enum import Enum as PyEnum

class IdMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

class TSMMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    version: Mapped[int] = mapped_column(Integer, default=1)


class DiscountType(PyEnum):
    PERCENT = "PERCENT"
    FIXED = "FIXED"


# ── Shared order/quote columns ──────────────────────────────────────────────
# CakeOrder and Quote carry the same selections so a quote converts into an
# order (and an order/quote maps onto one calculation document) field by field.
class SelectionMixin:
    customer_name: Mapped[str] = mapped_column(String(160))
    event_date: Mapped[date] = mapped_column(Date)
    event_type: Mapped[str | None] = mapped_column(String(80))
    notes: Mapped[str | None] = mapped_column(Text)
    # delivery
    is_delivery: Mapped[bool] = mapped_column(Boolean, default=False)
    delivery_zone_id: Mapped[str | None] = mapped_column(String(36))
    delivery_distance: Mapped[float | None] = mapped_column(Numeric(8, 2))
    delivery_lat: Mapped[float | None] = mapped_column(Numeric(9, 6))
    delivery_lng: Mapped[float | None] = mapped_column(Numeric(9, 6))
    delivery_address: Mapped[str | None] = mapped_column(Text)
    # manual labor on top of recipe/assembly labor
    baker_hours: Mapped[float | None] = mapped_column(Numeric(6, 2))
    assistant_hours: Mapped[float | None] = mapped_column(Numeric(6, 2))
    # topper
    topper_type: Mapped[str | None] = mapped_column(String(40))
    topper_text: Mapped[str | None] = mapped_column(String(120))
    custom_topper_fee: Mapped[float | None] = mapped_column(Numeric(10, 2))
    # pricing overrides
    markup_percent: Mapped[float | None] = mapped_column(Numeric(6, 4))
    discount_type: Mapped[DiscountType | None] = mapped_column(Enum(DiscountType))
    discount_value: Mapped[float | None] = mapped_column(Numeric(10, 2))
    discount_reason: Mapped[str | None] = mapped_column(Text)


class TierFieldsMixin:
    tier_index: Mapped[int] = mapped_column(Integer)
    tier_size_id: Mapped[str | None] = mapped_column(String(36))
    batter_recipe_id: Mapped[str | None] = mapped_column(String(36))
    batter_multiplier: Mapped[float | None] = mapped_column(Numeric(8, 4))
    filling_recipe_id: Mapped[str | None] = mapped_column(String(36))
    filling_multiplier: Mapped[float | None] = mapped_column(Numeric(8, 4))
    frosting_recipe_id: Mapped[str | None] = mapped_column(String(36))
    frosting_multiplier: Mapped[float | None] = mapped_column(Numeric(8, 4))
    flavor: Mapped[str | None] = mapped_column(String(120))
    filling: Mapped[str | None] = mapped_column(String(120))
    finish: Mapped[str | None] = mapped_column(String(120))
    finish_type: Mapped[str | None] = mapped_column(String(60))
    color: Mapped[str | None] = mapped_column(String(60))


class DecorationFieldsMixin:
    decoration_technique_id: Mapped[str] = mapped_column(String(36))
    quantity: Mapped[float] = mapped_column(Numeric(10, 2), default=1)
    unit_override: Mapped[str | None] = mapped_column(String(10))
    cost_override: Mapped[float | None] = mapped_column(Numeric(10, 2))
    tier_indices: Mapped[list | None] = mapped_column(JSON)
    notes: Mapped[str | None] = mapped_column(Text)


class ItemFieldsMixin:
    menu_item_id: Mapped[str | None] = mapped_column(String(36))
    product_type_id: Mapped[str | None] = mapped_column(String(36))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[float | None] = mapped_column(Numeric(10, 2))
    notes: Mapped[str | None] = mapped_column(Text)


class PackagingFieldsMixin:
    packaging_id: Mapped[str] = mapped_column(String(36))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    # set when the packaging belongs to one item line rather than the whole order
    item_index: Mapped[int | None] = mapped_column(Integer)
