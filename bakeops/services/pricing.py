import json
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bakeops.config import settings
from bakeops.errors import InvalidInputError
from bakeops.models.core import Setting

logger = logging.getLogger(__name__)

DEFAULT_TOPPER_FEES = {
    "age": 8.0,
    "initials": 8.0,
    "happy_birthday": 10.0,
    "its_a_boy": 10.0,
    "its_a_girl": 10.0,
    "congratulations": 10.0,
    "custom": 0.0,  # plus the order's custom_topper_fee
}

# Setting.key -> PricingConfig field
_SETTING_KEYS = {
    "MarkupPercent": "markup_percent",
    "BakerHourlyRate": "baker_rate",
    "DecoratorHourlyRate": "decorator_rate",
    "AssistantHourlyRate": "assistant_rate",
}


def _money(x) -> float:
    return float(Decimal(str(x)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


class PricingConfig(BaseModel):
    markup_percent: float = Field(default=0.70, ge=0)
    baker_rate: float = Field(default=25.0, ge=0)
    decorator_rate: float = Field(default=35.0, ge=0)
    assistant_rate: float = Field(default=18.0, ge=0)
    topper_fees: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_TOPPER_FEES))
    bakery_lat: Optional[float] = None
    bakery_lng: Optional[float] = None


def load_pricing_config(db: Session) -> PricingConfig:
    """Build the pricing coefficients for one calculation.

    Environment defaults come first, then any ``Setting`` rows on top. A row
    whose value does not parse is logged and ignored.
    """
    values = {
        "markup_percent": settings.DEFAULT_MARKUP_PERCENT,
        "baker_rate": settings.BAKER_HOURLY_RATE,
        "decorator_rate": settings.DECORATOR_HOURLY_RATE,
        "assistant_rate": settings.ASSISTANT_HOURLY_RATE,
        "topper_fees": dict(DEFAULT_TOPPER_FEES),
        "bakery_lat": settings.BAKERY_LAT,
        "bakery_lng": settings.BAKERY_LNG,
    }
    rows = db.query(Setting).filter(Setting.deleted_at.is_(None)).all()
    for row in rows:
        try:
            if row.key in _SETTING_KEYS:
                values[_SETTING_KEYS[row.key]] = float(row.value)
            elif row.key == "TopperFees":
                fees = json.loads(row.value)
                values["topper_fees"].update({str(k): float(v) for k, v in fees.items()})
        except (ValueError, TypeError, AttributeError):
            logger.warning("ignoring unparseable setting %s=%r", row.key, row.value)
    return PricingConfig(**values)


class PriceSummary(BaseModel):
    suggested_price: float
    markup_amount: float
    discount_amount: float
    manual_adjustment: float
    final_price: float
    price_per_serving: Optional[float] = None


def finalize(
    total_cost: float,
    markup_percent: float,
    discount: Optional[tuple[str, float]] = None,
    manual_adjustment: Optional[float] = None,
    servings: int = 0,
) -> PriceSummary:
    """Turn a cost into a price.

    ``discount`` is ``(type, value)`` with type PERCENT (of the suggested
    price) or FIXED; it never takes the price below zero. The manual
    adjustment is added afterwards and is not clamped.
    """
    if total_cost < 0 or markup_percent < 0:
        raise InvalidInputError("total_cost and markup_percent must be non-negative")

    cost = Decimal(str(total_cost))
    suggested = cost * (1 + Decimal(str(markup_percent)))

    discount_amount = Decimal(0)
    if discount:
        dtype, dvalue = discount
        dvalue = Decimal(str(dvalue or 0))
        if dvalue < 0:
            raise InvalidInputError("discount value must be non-negative")
        if dtype == "PERCENT":
            discount_amount = suggested * dvalue / 100
        elif dtype == "FIXED":
            discount_amount = dvalue
        else:
            raise InvalidInputError(f"unknown discount type {dtype!r}")
        discount_amount = min(discount_amount, suggested)

    adjustment = Decimal(str(manual_adjustment or 0))
    final = suggested - discount_amount + adjustment

    return PriceSummary(
        suggested_price=_money(suggested),
        markup_amount=_money(suggested - cost),
        discount_amount=_money(discount_amount),
        manual_adjustment=_money(adjustment),
        final_price=_money(final),
        price_per_serving=_money(final / servings) if servings else None,
    )
