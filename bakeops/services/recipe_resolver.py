import logging
from dataclasses import dataclass
from typing import Optional, Union

from bakeops.models.core import Recipe, RecipeType, TierSize
from bakeops.services.catalog import CatalogSnapshot

logger = logging.getLogger(__name__)

COMPONENTS = ("batter", "filling", "frosting")
SCOPES = {
    "batter": RecipeType.BATTER,
    "filling": RecipeType.FILLING,
    "frosting": RecipeType.FROSTING,
}
# tier attributes searched for free text, in order
HINT_FIELDS = {
    "batter": ("flavor",),
    "filling": ("filling",),
    "frosting": ("finish", "finish_type"),
}


@dataclass
class ResolvedComponent:
    component: str
    recipe: Optional[Recipe] = None
    multiplier: float = 0.0
    is_estimate: bool = False
    selector: Optional[str] = None  # explicit | keyword | tier_default
    warning: Optional[str] = None


def derive_multiplier(tier_volume, yield_volume) -> tuple[float, bool]:
    """``tier_volume / yield_volume``, or ``(1.0, True)`` when either side is missing or zero."""
    tv = float(tier_volume) if tier_volume is not None else 0.0
    yv = float(yield_volume) if yield_volume is not None else 0.0
    if tv > 0 and yv > 0:
        return tv / yv, False
    return 1.0, True


@dataclass(frozen=True)
class ExplicitRecipeRef:
    recipe_id: str
    multiplier: Optional[float] = None
    source: str = "explicit"  # or tier_default

    def select(self, catalog: CatalogSnapshot, component: str, tier_volume) -> ResolvedComponent:
        recipe = catalog.recipes.get(self.recipe_id)
        if recipe is None:
            return ResolvedComponent(
                component, is_estimate=True, selector=self.source,
                warning=f"{component} recipe {self.recipe_id} not found",
            )
        if self.multiplier is not None and float(self.multiplier) > 0:
            mult, estimate = float(self.multiplier), False
        elif self.source == "explicit":
            mult, estimate = 1.0, False
        else:
            mult, estimate = derive_multiplier(tier_volume, recipe.yield_volume_ml)
        return ResolvedComponent(component, recipe, mult, estimate, self.source)


@dataclass(frozen=True)
class KeywordMatch:
    scope: RecipeType
    pattern: str

    def find(self, catalog: CatalogSnapshot) -> Optional[Recipe]:
        needle = self.pattern.strip().lower()
        if not needle:
            return None
        candidates = [r for r in catalog.recipes_of_type(self.scope) if (r.name or "").strip()]
        for r in candidates:
            if needle in r.name.lower():
                return r
        for r in candidates:
            if r.name.strip().lower() in needle:
                return r
        return None

    def select(self, catalog: CatalogSnapshot, component: str, tier_volume) -> ResolvedComponent:
        recipe = self.find(catalog)
        if recipe is None:
            return ResolvedComponent(
                component, is_estimate=True, selector="keyword",
                warning=f"no {self.scope.value.lower()} recipe matches {self.pattern!r}",
            )
        mult, estimate = derive_multiplier(tier_volume, recipe.yield_volume_ml)
        return ResolvedComponent(component, recipe, mult, estimate, "keyword")


RecipeSelector = Union[ExplicitRecipeRef, KeywordMatch]


def selectors_for(tier, tier_size: Optional[TierSize], component: str) -> list[RecipeSelector]:
    """Selectors for one component in precedence order."""
    explicit_id = getattr(tier, f"{component}_recipe_id", None)
    if explicit_id:
        # an explicit choice is final, even when it does not resolve
        return [ExplicitRecipeRef(explicit_id, getattr(tier, f"{component}_multiplier", None))]

    out: list[RecipeSelector] = []
    for attr in HINT_FIELDS[component]:
        hint = getattr(tier, attr, None)
        if hint and hint.strip():
            out.append(KeywordMatch(SCOPES[component], hint))

    if tier_size is not None and component != "filling":
        default_id = getattr(tier_size, f"{component}_recipe_id", None)
        if default_id:
            out.append(ExplicitRecipeRef(default_id, getattr(tier_size, f"{component}_multiplier", None), "tier_default"))
    return out


def resolve_component(tier, tier_size: Optional[TierSize], component: str,
                      catalog: CatalogSnapshot) -> ResolvedComponent:
    tier_volume = tier_size.volume_ml if tier_size is not None else None
    warnings: list[str] = []
    for selector in selectors_for(tier, tier_size, component):
        result = selector.select(catalog, component, tier_volume)
        if result.recipe is not None:
            if warnings and result.selector == "tier_default":
                # the customer's wording matched nothing; the size default stands in
                result.warning = "; ".join(warnings)
                result.is_estimate = True
            return result
        warnings.append(result.warning)
        if isinstance(selector, ExplicitRecipeRef) and selector.source == "explicit":
            break

    if warnings:
        return ResolvedComponent(component, is_estimate=True, warning="; ".join(warnings))
    if component == "filling":
        return ResolvedComponent(component)
    return ResolvedComponent(component, is_estimate=True, warning=f"no {component} recipe selected")


def resolve_tier(tier, tier_size: Optional[TierSize], catalog: CatalogSnapshot) -> dict[str, ResolvedComponent]:
    resolved = {c: resolve_component(tier, tier_size, c, catalog) for c in COMPONENTS}
    for rc in resolved.values():
        if rc.warning:
            logger.warning("tier %s: %s", getattr(tier, "tier_index", "?"), rc.warning)
    return resolved
