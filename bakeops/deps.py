from fastapi import Depends, Header
from sqlalchemy.orm import Session
from bakeops.db import get_db
from bakeops.services.distance import DistanceProvider, default_provider
from bakeops.services.pricing import PricingConfig, load_pricing_config

def get_pricing_config(db: Session = Depends(get_db)) -> PricingConfig:
    # re-read on every request so Setting edits apply to the next calculation
    return load_pricing_config(db)

def get_distance_provider() -> DistanceProvider:
    return default_provider()

def get_actor(x_actor: str | None = Header(default=None)) -> str:
    # authentication lives outside this service; callers name themselves for the audit trail
    return x_actor or "api"
