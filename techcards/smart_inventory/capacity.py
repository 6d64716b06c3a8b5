"""
Tech Cards - Capacity Calculator
================================

Single-recipe production capacity against a stock snapshot.

Modes:
- analyze(): maximum batches/units with current stock, bottleneck ingredient
- plan(): per-material requirement and shortfall for a target output

Per-batch requirements come from the norm resolver (current month, most
recent month, or base quantity). Expected "nothing to compute" states
return None instead of raising.

Model:
    max_batches[i] = floor(available[i] / per_batch[i])
    max_batches    = min_i max_batches[i]      (first minimum wins)
    max_units      = max_batches * output_quantity

    batches_needed = target_units / output_quantity   (not rounded)
    balance[i]     = available[i] - per_batch[i] * batches_needed
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

import pandas as pd

from techcards.config import PlannerSettings
from techcards.models_common import (
    MaterialCatalog,
    Recipe,
    ResolvedIngredient,
)
from techcards.smart_inventory.norms import EffectiveNorm, NormResolver, NormSource
from techcards.smart_inventory.stock_state import StockProvider, StockSnapshot

logger = logging.getLogger(__name__)

# Tolerance for floor() on ratios like 0.3 / 0.1
_FLOOR_EPS = 1e-9


# ═══════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════════

class LineStatus(str, Enum):
    """Display status of one ingredient."""
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class CapacityLine:
    """One ingredient in a max-output analysis."""
    position: int
    material_id: Optional[str]
    sku: str
    name: str
    unit: str
    per_batch: float
    norm_source: NormSource
    norm_month: Optional[date]
    available: float
    max_batches: Optional[int]  # None: imposes no limit
    status: LineStatus = LineStatus.OK

    @property
    def unconstrained(self) -> bool:
        return self.max_batches is None


@dataclass
class AnalysisResult:
    """Max-output analysis of one recipe."""
    recipe_id: str
    recipe_name: str
    reference_month: date
    output_quantity: float
    unconstrained: bool
    max_batches: Optional[int] = None
    max_output_units: Optional[float] = None
    limiting: Optional[CapacityLine] = None
    lines: List[CapacityLine] = field(default_factory=list)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([
            {
                "position": line.position,
                "material_id": line.material_id,
                "sku": line.sku,
                "name": line.name,
                "unit": line.unit,
                "per_batch": line.per_batch,
                "norm_source": line.norm_source.value,
                "available": line.available,
                "max_batches": line.max_batches,
                "status": line.status.value,
                "limiting": self.limiting is line,
            }
            for line in self.lines
        ])


@dataclass
class PlanLine:
    """One ingredient in a forward plan."""
    position: int
    material_id: Optional[str]
    sku: str
    name: str
    unit: str
    per_batch: float
    norm_source: NormSource
    required_total: float
    available: float

    @property
    def projected_balance(self) -> float:
        return self.available - self.required_total

    @property
    def shortage(self) -> bool:
        return self.projected_balance < 0

    @property
    def shortage_quantity(self) -> float:
        return max(0.0, -self.projected_balance)


@dataclass
class PlanResult:
    """Requirement and shortfall report for a target output."""
    recipe_id: str
    recipe_name: str
    reference_month: date
    target_units: float
    batches_needed: float
    lines: List[PlanLine] = field(default_factory=list)

    @property
    def shortages(self) -> List[PlanLine]:
        return [line for line in self.lines if line.shortage]

    @property
    def has_shortage(self) -> bool:
        return any(line.shortage for line in self.lines)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([
            {
                "position": line.position,
                "material_id": line.material_id,
                "sku": line.sku,
                "name": line.name,
                "unit": line.unit,
                "per_batch": line.per_batch,
                "norm_source": line.norm_source.value,
                "required_total": line.required_total,
                "available": line.available,
                "projected_balance": line.projected_balance,
                "shortage": line.shortage,
            }
            for line in self.lines
        ])


# ═══════════════════════════════════════════════════════════════════════════════
# CALCULATOR
# ═══════════════════════════════════════════════════════════════════════════════

class CapacityCalculator:
    """
    Stateless calculator; safe to share across threads.

    The optional catalog supplies display names/units and enables the
    secondary stock lookup by SKU.
    """

    def __init__(self, catalog: Optional[MaterialCatalog] = None):
        self.catalog = catalog

    # ─────────────────────────────────────────────────────────────────────────
    # Stock & display
    # ─────────────────────────────────────────────────────────────────────────

    def available_stock(self, ingredient: ResolvedIngredient, stock: StockProvider) -> float:
        """
        On-hand quantity for an ingredient.

        Own material id first. When that is empty (or the ingredient is a
        placeholder) and a fallback SKU exists, the first other catalog
        material with that SKU and stock > 0 is used.
        """
        own_id = ingredient.material_id
        available = stock.aggregate_by_material(own_id) if own_id else 0.0
        if available != 0 or self.catalog is None:
            return available

        fallback = ingredient.fallback
        if fallback is None or not fallback.sku:
            return available

        for material in self.catalog.find_by_sku(fallback.sku):
            if material.material_id == own_id:
                continue
            alt = stock.aggregate_by_material(material.material_id)
            if alt > 0:
                logger.debug(
                    f"Stock for SKU {fallback.sku} found under {material.material_id} "
                    f"instead of {own_id}"
                )
                return alt
        return available

    def _describe(self, ingredient: ResolvedIngredient) -> Tuple[str, str, str]:
        """(sku, name, unit) for display."""
        material_id = ingredient.material_id
        if material_id and self.catalog is not None:
            material = self.catalog.get(material_id)
            if material is not None:
                return material.sku, material.name, material.unit
        fallback = ingredient.fallback
        if fallback is not None:
            return fallback.sku, fallback.name or fallback.sku, ""
        return "", material_id or "", ""

    @staticmethod
    def _status(max_batches: Optional[int]) -> LineStatus:
        if max_batches is None:
            return LineStatus.OK
        if max_batches <= 0:
            return LineStatus.CRITICAL
        if max_batches < PlannerSettings.get_config().warning_batches:
            return LineStatus.WARNING
        return LineStatus.OK

    # ─────────────────────────────────────────────────────────────────────────
    # Max output
    # ─────────────────────────────────────────────────────────────────────────

    def analyze(
        self,
        recipe: Optional[Recipe],
        stock: Any,
        reference_month: Union[str, date],
    ) -> Optional[AnalysisResult]:
        """Maximum producible batches/units for `recipe` with `stock`."""
        if recipe is None:
            return None
        if recipe.output_quantity is None or recipe.output_quantity <= 0:
            logger.warning(f"Recipe {recipe.recipe_id} has output quantity {recipe.output_quantity}; skipped")
            return None

        if not isinstance(stock, StockProvider):
            stock = StockSnapshot.build(stock)
        resolver = NormResolver(reference_month)

        constrained: List[CapacityLine] = []
        free: List[CapacityLine] = []
        for position, ingredient in enumerate(recipe.ingredients):
            norm: EffectiveNorm = resolver.resolve(ingredient)
            sku, name, unit = self._describe(ingredient)
            available = self.available_stock(ingredient, stock)

            if norm.value <= 0:
                free.append(CapacityLine(
                    position=position, material_id=ingredient.material_id,
                    sku=sku, name=name, unit=unit,
                    per_batch=norm.value, norm_source=norm.source, norm_month=norm.source_month,
                    available=available, max_batches=None,
                ))
                continue

            max_batches = max(0, math.floor(available / norm.value + _FLOOR_EPS))
            constrained.append(CapacityLine(
                position=position, material_id=ingredient.material_id,
                sku=sku, name=name, unit=unit,
                per_batch=norm.value, norm_source=norm.source, norm_month=norm.source_month,
                available=available, max_batches=max_batches,
                status=self._status(max_batches),
            ))

        result = AnalysisResult(
            recipe_id=recipe.recipe_id,
            recipe_name=recipe.name,
            reference_month=resolver.reference_month,
            output_quantity=recipe.output_quantity,
            unconstrained=not constrained,
        )

        # stable: equal max_batches keep ingredient order
        constrained.sort(key=lambda line: line.max_batches)
        result.lines = constrained + free

        if constrained:
            result.limiting = constrained[0]
            result.max_batches = constrained[0].max_batches
            result.max_output_units = result.max_batches * recipe.output_quantity

        logger.debug(
            f"Capacity {recipe.recipe_id}: max_batches={result.max_batches}, "
            f"limiting={result.limiting.name if result.limiting else None}"
        )
        return result

    # ─────────────────────────────────────────────────────────────────────────
    # Forward planning
    # ─────────────────────────────────────────────────────────────────────────

    def plan(
        self,
        recipe: Optional[Recipe],
        stock: Any,
        target_units: float,
        reference_month: Union[str, date],
    ) -> Optional[PlanResult]:
        """Requirement and projected balance per ingredient for `target_units`."""
        if recipe is None or not recipe.ingredients:
            return None
        if target_units is None or target_units <= 0:
            return None
        if recipe.output_quantity is None or recipe.output_quantity <= 0:
            logger.warning(f"Recipe {recipe.recipe_id} has output quantity {recipe.output_quantity}; skipped")
            return None

        if not isinstance(stock, StockProvider):
            stock = StockSnapshot.build(stock)
        resolver = NormResolver(reference_month)
        batches_needed = target_units / recipe.output_quantity

        lines: List[PlanLine] = []
        for position, ingredient in enumerate(recipe.ingredients):
            norm = resolver.resolve(ingredient)
            required_total = norm.value * batches_needed
            if required_total <= 0:
                continue
            sku, name, unit = self._describe(ingredient)
            lines.append(PlanLine(
                position=position, material_id=ingredient.material_id,
                sku=sku, name=name, unit=unit,
                per_batch=norm.value, norm_source=norm.source,
                required_total=required_total,
                available=self.available_stock(ingredient, stock),
            ))

        result = PlanResult(
            recipe_id=recipe.recipe_id,
            recipe_name=recipe.name,
            reference_month=resolver.reference_month,
            target_units=target_units,
            batches_needed=batches_needed,
            lines=lines,
        )
        if result.has_shortage:
            logger.info(
                f"Plan {recipe.recipe_id} x{target_units}: {len(result.shortages)} materials short"
            )
        return result


# ═══════════════════════════════════════════════════════════════════════════════
# PUBLIC FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def analyze_recipe(
    recipe_id: str,
    store,
    stock: Any,
    reference_month: Union[str, date],
    catalog: Optional[MaterialCatalog] = None,
) -> Optional[AnalysisResult]:
    """Load a recipe from `store` and analyze it; None if it does not exist."""
    recipe = store.get_recipe(recipe_id)
    if recipe is None:
        logger.info(f"Recipe {recipe_id} not found")
        return None
    return CapacityCalculator(catalog).analyze(recipe, stock, reference_month)


def plan_recipe(
    recipe_id: str,
    store,
    stock: Any,
    target_units: float,
    reference_month: Union[str, date],
    catalog: Optional[MaterialCatalog] = None,
) -> Optional[PlanResult]:
    """Load a recipe from `store` and plan `target_units`; None if it does not exist."""
    recipe = store.get_recipe(recipe_id)
    if recipe is None:
        logger.info(f"Recipe {recipe_id} not found")
        return None
    return CapacityCalculator(catalog).plan(recipe, stock, target_units, reference_month)
