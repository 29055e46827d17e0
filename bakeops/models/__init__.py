# Importing the module registers tables with Base for create_all()
from .common import DiscountType  # noqa: F401
from .core import (  # noqa: F401
    # Enums
    RecipeType, DecorationUnit, OrderStatus, QuoteStatus, TaskStatus, TaskType, SignoffType,

    # Labor & ingredients
    LaborRole, Ingredient, Vendor, IngredientVendor,

    # Recipes & tier sizes
    Recipe, RecipeIngredient, TierSize,

    # Decorations, packaging, delivery
    DecorationTechnique, Packaging, DeliveryZone,

    # Menu & volume pricing
    ProductType, MenuItem, VolumeBreakpoint,

    # Settings
    Setting,

    # Orders
    CakeOrder, OrderTier, OrderDecoration, OrderItem, OrderPackaging, OrderCosting, OrderPrepSignoff,

    # Quotes
    Quote, QuoteTier, QuoteDecoration, QuoteItem, QuotePackaging, QuoteChain,

    # Production
    ProductionTask, TaskDependency, TaskSignoff,

    # Inventory
    InventoryItem, InventoryLot,

    # Audit
    AuditLog,
)

# Optional: make star-imports predictable
__all__ = [
    # Enums
    "DiscountType", "RecipeType", "DecorationUnit", "OrderStatus", "QuoteStatus",
    "TaskStatus", "TaskType", "SignoffType",

    # Labor & ingredients
    "LaborRole", "Ingredient", "Vendor", "IngredientVendor",

    # Recipes & tier sizes
    "Recipe", "RecipeIngredient", "TierSize",

    # Decorations, packaging, delivery
    "DecorationTechnique", "Packaging", "DeliveryZone",

    # Menu & volume pricing
    "ProductType", "MenuItem", "VolumeBreakpoint",

    # Settings
    "Setting",

    # Orders
    "CakeOrder", "OrderTier", "OrderDecoration", "OrderItem", "OrderPackaging",
    "OrderCosting", "OrderPrepSignoff",

    # Quotes
    "Quote", "QuoteTier", "QuoteDecoration", "QuoteItem", "QuotePackaging", "QuoteChain",

    # Production
    "ProductionTask", "TaskDependency", "TaskSignoff",

    # Inventory
    "InventoryItem", "InventoryLot",

    # Audit
    "AuditLog",
]
