"""
════════════════════════════════════════════════════════════════════════════════
EXCEL EXPORT - Recipes back to a tech-card sheet
════════════════════════════════════════════════════════════════════════════════

Writes the same layout the parser reads:
- identity columns: Артикул ГП, Назва ГП, Група КСМ, Артикул КСМ, Назва КСМ,
  Од. вим., Еталон
- one DD.MM.YYYY column per month present in any exported norm history

One row per ingredient; a recipe without ingredients gets a single row with
only the finished-good columns so it survives a re-import.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from techcards.models_common import (
    CanonicalRef,
    MaterialCatalog,
    Recipe,
    ResolvedIngredient,
)

logger = logging.getLogger(__name__)

BASE_COLUMNS = ["Артикул ГП", "Назва ГП", "Група КСМ", "Артикул КСМ", "Назва КСМ", "Од. вим.", "Еталон"]
DEFAULT_SHEET_NAME = "Техкарти"

_SHEET_UNITS = {
    "pcs": "шт",
    "шт": "шт",
    "kg": "кг",
    "g": "г",
    "l": "л",
    "ml": "мл",
}


def format_unit(unit: Optional[str]) -> str:
    """Unit code as sheet text; blank means pieces."""
    if not unit:
        return "шт"
    return _SHEET_UNITS.get(unit.lower(), unit)


def _month_header(month: date) -> str:
    return month.strftime("%d.%m.%Y")


def _output_identity(recipe: Recipe, catalog: MaterialCatalog) -> Tuple[str, str]:
    if isinstance(recipe.output, CanonicalRef):
        material = catalog.get(recipe.output.material_id)
        if material is not None:
            return material.sku or recipe.output.material_id, material.name or recipe.name
        return recipe.output.material_id, recipe.name
    return recipe.output.sku, recipe.output.name or recipe.name


def _material_columns(ingredient: ResolvedIngredient, catalog: MaterialCatalog) -> Optional[Dict[str, Any]]:
    material = catalog.get(ingredient.material_id) if ingredient.material_id else None
    if material is not None:
        return {
            "Група КСМ": material.category,
            "Артикул КСМ": material.sku,
            "Назва КСМ": material.name,
            "Од. вим.": format_unit(material.unit),
        }
    fb = ingredient.fallback
    if fb is None or not (fb.sku or fb.name):
        return None
    return {
        "Група КСМ": "",
        "Артикул КСМ": fb.sku,
        "Назва КСМ": fb.name or fb.sku,
        "Од. вим.": format_unit(None),
    }


def build_tech_cards_frame(recipes: Iterable[Recipe], catalog: MaterialCatalog) -> pd.DataFrame:
    """Sheet rows for `recipes`, ingredient order preserved."""
    recipes = list(recipes)
    months = sorted({
        norm.month
        for recipe in recipes
        for ingredient in recipe.ingredients
        for norm in ingredient.monthly_norms
    })
    columns = BASE_COLUMNS + [_month_header(m) for m in months]

    rows: List[Dict[str, Any]] = []
    for recipe in recipes:
        gp_sku, gp_name = _output_identity(recipe, catalog)
        written = 0
        for ingredient in recipe.ingredients:
            material_cols = _material_columns(ingredient, catalog)
            if material_cols is None:
                logger.warning(f"Recipe {recipe.recipe_id}: ingredient without SKU or name skipped")
                continue
            row: Dict[str, Any] = {"Артикул ГП": gp_sku, "Назва ГП": gp_name, "Еталон": ingredient.quantity}
            row.update(material_cols)
            # first entry per month, same rule as norm selection
            for norm in ingredient.monthly_norms:
                row.setdefault(_month_header(norm.month), norm.quantity)
            rows.append(row)
            written += 1
        if written == 0:
            rows.append({"Артикул ГП": gp_sku, "Назва ГП": gp_name})

    return pd.DataFrame(rows, columns=columns)


def export_tech_cards_excel(
    recipes: Iterable[Recipe],
    catalog: MaterialCatalog,
    file_path: str | Path,
    sheet_name: str = DEFAULT_SHEET_NAME,
) -> int:
    """
    Write recipes to an .xlsx sheet the importer can read back.

    Returns:
        number of data rows written (0 when there is nothing to export)
    """
    recipes = list(recipes)
    if not recipes:
        logger.warning("No tech cards to export")
        return 0

    frame = build_tech_cards_frame(recipes, catalog)
    frame.to_excel(file_path, sheet_name=sheet_name, index=False)
    logger.info(f"Exported {len(recipes)} tech cards ({len(frame)} rows) to {file_path}")
    return len(frame)
