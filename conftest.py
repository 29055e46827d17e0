# conftest.py
import os

# keep the app's own engine off disk; tests bind their own in-memory database
os.environ.setdefault("DB_URL", "sqlite://")

from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bakeops.db import Base, get_db
from bakeops.deps import get_distance_provider
from bakeops.main import app
from bakeops.models import (
    LaborRole, Ingredient, Vendor, IngredientVendor, Recipe, RecipeIngredient, RecipeType,
    TierSize, DecorationTechnique, DecorationUnit, Packaging, DeliveryZone, ProductType,
    MenuItem, VolumeBreakpoint, InventoryItem,
)
from bakeops.services.distance import HaversineDistanceProvider

EVENT_DATE = date.today() + timedelta(days=14)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    s = TestingSessionLocal()
    try:
        yield s
    finally:
        s.close()


def seed_catalog(db) -> SimpleNamespace:
    """A small bakery catalog with round numbers.

    Vanilla Sponge batch: flour 500g, sugar 400g, butter 200g, 8 eggs = $6.20
    Vanilla Buttercream batch: butter 250g, sugar 500g = $4.00
    8 inch tier: 4000ml, 24 servings, 30 min assembly by the Baker ($30/h)
    """
    ids = SimpleNamespace()
    rows = [
        LaborRole(id="role-baker", name="Baker", hourly_rate=30, is_active=True),
        LaborRole(id="role-deco", name="Decorator", hourly_rate=40, is_active=True),

        Ingredient(id="ing-flour", name="Flour", unit="g", cost_per_unit=0.002),
        Ingredient(id="ing-sugar", name="Sugar", unit="g", cost_per_unit=0.003),
        Ingredient(id="ing-butter", name="Butter", unit="g", cost_per_unit=0.01),
        Ingredient(id="ing-eggs", name="Eggs", unit="each", cost_per_unit=0.25),
        Ingredient(id="ing-cheese", name="Cream Cheese", unit="g", cost_per_unit=0.012),
        Ingredient(id="ing-berry", name="Strawberries", unit="g", cost_per_unit=0.008),

        Recipe(id="rec-vanilla", name="Vanilla Sponge", type=RecipeType.BATTER, yield_volume_ml=2000,
               labor_minutes=30, labor_role_id="role-baker", is_active=True),
        Recipe(id="rec-choc", name="Chocolate Fudge", type=RecipeType.BATTER, yield_volume_ml=2000,
               labor_minutes=40, labor_role_id="role-baker", is_active=True),
        Recipe(id="rec-buttercream", name="Vanilla Buttercream", type=RecipeType.FROSTING, yield_volume_ml=1000,
               labor_minutes=20, labor_role_id="role-baker", is_active=True),
        Recipe(id="rec-cheese", name="Cream Cheese Frosting", type=RecipeType.FROSTING, yield_volume_ml=1000,
               labor_minutes=20, labor_role_id="role-baker", is_active=True),
        Recipe(id="rec-jam", name="Strawberry Jam", type=RecipeType.FILLING, yield_volume_ml=500,
               labor_minutes=15, labor_role_id="role-baker", is_active=True),

        RecipeIngredient(recipe_id="rec-vanilla", ingredient_id="ing-flour", quantity=500),
        RecipeIngredient(recipe_id="rec-vanilla", ingredient_id="ing-sugar", quantity=400),
        RecipeIngredient(recipe_id="rec-vanilla", ingredient_id="ing-butter", quantity=200),
        RecipeIngredient(recipe_id="rec-vanilla", ingredient_id="ing-eggs", quantity=8),
        RecipeIngredient(recipe_id="rec-choc", ingredient_id="ing-flour", quantity=400),
        RecipeIngredient(recipe_id="rec-choc", ingredient_id="ing-sugar", quantity=500),
        RecipeIngredient(recipe_id="rec-buttercream", ingredient_id="ing-butter", quantity=250),
        RecipeIngredient(recipe_id="rec-buttercream", ingredient_id="ing-sugar", quantity=500),
        RecipeIngredient(recipe_id="rec-cheese", ingredient_id="ing-cheese", quantity=300),
        RecipeIngredient(recipe_id="rec-cheese", ingredient_id="ing-sugar", quantity=200),
        RecipeIngredient(recipe_id="rec-jam", ingredient_id="ing-berry", quantity=400),
        RecipeIngredient(recipe_id="rec-jam", ingredient_id="ing-sugar", quantity=100),

        TierSize(id="tier-8", name="8 inch round", volume_ml=4000, servings=24,
                 batter_recipe_id="rec-vanilla", frosting_recipe_id="rec-buttercream",
                 assembly_minutes=30, assembly_role_id="role-baker"),
        TierSize(id="tier-6", name="6 inch round", volume_ml=2000, servings=12,
                 batter_recipe_id="rec-vanilla", frosting_recipe_id="rec-buttercream",
                 assembly_minutes=20, assembly_role_id="role-baker"),

        DecorationTechnique(id="dec-flowers", sku="DEC-001", name="Sugar Flowers", category="Sugar Work",
                            unit=DecorationUnit.EACH, default_cost_per_unit=5, labor_minutes=15,
                            labor_role_id="role-deco", is_active=True),
        DecorationTechnique(id="dec-gold", sku="DEC-002", name="Gold Leaf Band", category="Metallic",
                            unit=DecorationUnit.TIER, default_cost_per_unit=3, labor_minutes=10,
                            is_active=True),

        Packaging(id="pkg-box", name="Cake Box 10in", cost_per_unit=2.5),

        DeliveryZone(id="zone-local", name="Local", min_distance=0, max_distance=10, base_fee=15,
                     per_mile_fee=None, is_active=True),
        DeliveryZone(id="zone-ext", name="Extended", min_distance=10, max_distance=25, base_fee=20,
                     per_mile_fee=1.5, is_active=True),
        DeliveryZone(id="zone-far", name="Far", min_distance=25, max_distance=None, base_fee=50,
                     per_mile_fee=2, is_active=True),

        ProductType(id="pt-cupcake", name="Cupcakes"),
        MenuItem(id="mi-vanilla-cupcake", name="Vanilla Cupcake", product_type_id="pt-cupcake", base_price=2.00,
                 yields_per_recipe=24, batter_recipe_id="rec-vanilla", frosting_recipe_id="rec-buttercream",
                 is_active=True),
        VolumeBreakpoint(id="bp-1", product_type_id="pt-cupcake", min_quantity=1, max_quantity=11,
                         discount_percent=0, is_active=True),
        VolumeBreakpoint(id="bp-12", product_type_id="pt-cupcake", min_quantity=12, max_quantity=23,
                         discount_percent=10, is_active=True),
        VolumeBreakpoint(id="bp-24", product_type_id="pt-cupcake", min_quantity=24, max_quantity=None,
                         discount_percent=0, price_per_unit=1.50, is_active=True),

        Vendor(id="ven-bakers", name="Baker's Supply"),
        Vendor(id="ven-depot", name="Restaurant Depot"),
        IngredientVendor(ingredient_id="ing-flour", vendor_id="ven-bakers", vendor_sku="FL-10K",
                         pack_size=10000, pack_unit="g", price_per_pack=12, is_preferred=True),
        IngredientVendor(ingredient_id="ing-flour", vendor_id="ven-depot", vendor_sku="FL-25K",
                         pack_size=25000, pack_unit="g", price_per_pack=20, is_preferred=False),
        IngredientVendor(ingredient_id="ing-sugar", vendor_id="ven-depot", vendor_sku="SU-5K",
                         pack_size=5000, pack_unit="g", price_per_pack=8, is_preferred=False),
        IngredientVendor(ingredient_id="ing-sugar", vendor_id="ven-bakers", vendor_sku="SU-2K",
                         pack_size=2000, pack_unit="g", price_per_pack=5, is_preferred=False),
        IngredientVendor(ingredient_id="ing-butter", vendor_id="ven-depot", vendor_sku="BU-1K",
                         pack_size=1000, pack_unit="g", price_per_pack=9, is_preferred=False),

        InventoryItem(id="inv-cupcake", sku="CUP-VAN", name="Vanilla cupcakes (frozen)", unit="each", min_stock=24),
    ]
    db.add_all(rows)
    db.commit()
    ids.event_date = EVENT_DATE
    return ids


@pytest.fixture
def seeded(db):
    return seed_catalog(db)


@pytest.fixture
def client(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_distance_provider] = HaversineDistanceProvider
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
