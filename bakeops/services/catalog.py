from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from bakeops.models.core import (
    Recipe, RecipeIngredient, Ingredient, TierSize, LaborRole, DecorationTechnique,
    Packaging, DeliveryZone, MenuItem, ProductType, VolumeBreakpoint, Vendor, IngredientVendor,
)


@dataclass
class CatalogSnapshot:
    """Read-only lookups for one calculation.

    Built once per call from the session; nothing here is cached across calls.
    Tests may also construct it directly from transient model instances.
    """
    recipes: dict[str, Recipe] = field(default_factory=dict)
    recipe_ingredients: dict[str, list[RecipeIngredient]] = field(default_factory=dict)
    ingredients: dict[str, Ingredient] = field(default_factory=dict)
    tier_sizes: dict[str, TierSize] = field(default_factory=dict)
    labor_roles: dict[str, LaborRole] = field(default_factory=dict)
    decorations: dict[str, DecorationTechnique] = field(default_factory=dict)
    packaging: dict[str, Packaging] = field(default_factory=dict)
    zones: list[DeliveryZone] = field(default_factory=list)
    menu_items: dict[str, MenuItem] = field(default_factory=dict)
    product_types: dict[str, ProductType] = field(default_factory=dict)
    breakpoints: list[VolumeBreakpoint] = field(default_factory=list)
    vendors: dict[str, Vendor] = field(default_factory=dict)
    ingredient_vendors: dict[str, list[IngredientVendor]] = field(default_factory=dict)

    @classmethod
    def from_session(cls, db: Session) -> "CatalogSnapshot":
        def live(model):
            return db.query(model).filter(model.deleted_at.is_(None)).all()

        snap = cls(
            recipes={r.id: r for r in live(Recipe)},
            ingredients={i.id: i for i in live(Ingredient)},
            tier_sizes={t.id: t for t in live(TierSize)},
            labor_roles={r.id: r for r in live(LaborRole)},
            decorations={d.id: d for d in live(DecorationTechnique)},
            packaging={p.id: p for p in live(Packaging)},
            zones=sorted((z for z in live(DeliveryZone) if z.is_active), key=lambda z: float(z.min_distance or 0)),
            menu_items={m.id: m for m in live(MenuItem)},
            product_types={p.id: p for p in live(ProductType)},
            breakpoints=live(VolumeBreakpoint),
            vendors={v.id: v for v in live(Vendor)},
        )
        for ri in live(RecipeIngredient):
            snap.recipe_ingredients.setdefault(ri.recipe_id, []).append(ri)
        for iv in live(IngredientVendor):
            snap.ingredient_vendors.setdefault(iv.ingredient_id, []).append(iv)
        return snap

    # ── lookups ──
    def recipes_of_type(self, recipe_type) -> list[Recipe]:
        """Active recipes of one type in name order (ties broken by id)."""
        rows = [r for r in self.recipes.values() if r.type == recipe_type and r.is_active is not False]
        return sorted(rows, key=lambda r: ((r.name or "").lower(), r.id or ""))

    def role_rate(self, role_id: Optional[str], default_rate: float) -> tuple[float, bool]:
        """Hourly rate for a labor role; ``(rate, degraded)``.

        No role falls back to ``default_rate`` silently. A role id that does
        not resolve also falls back, but is reported as degraded.
        """
        if not role_id:
            return default_rate, False
        role = self.labor_roles.get(role_id)
        if role is None or role.hourly_rate is None:
            return default_rate, True
        return float(role.hourly_rate), False

    def zone_for_distance(self, miles: float) -> Optional[DeliveryZone]:
        for z in self.zones:
            lo = float(z.min_distance or 0)
            hi = float(z.max_distance) if z.max_distance is not None else None
            if miles >= lo and (hi is None or miles < hi):
                return z
        return None
