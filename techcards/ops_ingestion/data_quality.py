"""
════════════════════════════════════════════════════════════════════════════════
DATA QUALITY - Checks on imported recipes
════════════════════════════════════════════════════════════════════════════════

Quality checks run after an import (or on demand) over resolved recipes.
Nothing here blocks an import; findings are reported as warnings/errors.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, Iterable, List

from techcards.models_common import Recipe, ResolvedIngredient

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# QUALITY CHECKS - RECIPES
# ═══════════════════════════════════════════════════════════════════════════════

def _ingredient_label(ingredient: ResolvedIngredient) -> str:
    fb = ingredient.fallback
    if fb is not None and (fb.sku or fb.name):
        return f"{fb.sku} {fb.name}".strip()
    return ingredient.material_id or "?"


def analyze_recipes_quality(recipes: Iterable[Recipe]) -> Dict[str, Any]:
    """
    Analyze the quality of resolved recipes.

    Checks:
    - Output quantity per batch <= 0 (error)
    - Recipe without ingredients
    - Zero base norm with no positive monthly norm
    - Duplicate months in a norm history
    - Placeholder (unresolved) ingredients
    - Duplicate-SKU fan-out

    Returns:
        dict with warnings, errors and checked_count
    """
    warnings: List[str] = []
    errors: List[str] = []
    checked = 0

    for recipe in recipes:
        checked += 1
        label = recipe.name or recipe.recipe_id

        if recipe.output_quantity is None or recipe.output_quantity <= 0:
            errors.append(f"Recipe {label}: output quantity must be > 0 (got {recipe.output_quantity})")

        if not recipe.ingredients:
            warnings.append(f"Recipe {label}: no ingredients")
            continue

        placeholders = 0
        duplicates = 0
        for ingredient in recipe.ingredients:
            item = _ingredient_label(ingredient)

            if ingredient.quantity <= 0 and not any(n.quantity > 0 for n in ingredient.monthly_norms):
                warnings.append(f"Recipe {label}: {item} has no positive norm")

            months = Counter(n.month_key for n in ingredient.monthly_norms)
            repeated = sorted(m for m, count in months.items() if count > 1)
            if repeated:
                warnings.append(f"Recipe {label}: {item} has duplicate months {', '.join(repeated)}")

            if not ingredient.is_resolved:
                placeholders += 1
            if ingredient.is_duplicate_sku:
                duplicates += 1

        if placeholders:
            warnings.append(f"Recipe {label}: {placeholders} unresolved ingredients")
        if duplicates:
            warnings.append(f"Recipe {label}: {duplicates} ingredients from duplicate SKUs")

    logger.debug(f"Quality check: {checked} recipes, {len(warnings)} warnings, {len(errors)} errors")
    return {
        "warnings": warnings,
        "errors": errors,
        "checked_count": checked,
    }
