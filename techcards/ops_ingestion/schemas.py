"""
════════════════════════════════════════════════════════════════════════════════
TECH CARD SCHEMAS - Pydantic models for imported tech-card rows
════════════════════════════════════════════════════════════════════════════════

Schemas:
- MonthlyNormSchema: one (month, quantity) cell of a monthly-norm column
- RawIngredientDescriptor: one ingredient row, before material resolution
- TechCardRow: one finished good with its ingredient rows
- ImportDiagnostics / ImportResult: outcome of an import batch

Quantities may arrive already parsed (float) or as raw cell text; raw text goes
through the numeric normalizer using the row's unit/category/name hints.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from techcards.models_common import MonthlyNorm, Recipe, parse_month
from techcards.ops_ingestion.numeric import normalize


# ═══════════════════════════════════════════════════════════════════════════════
# ROW SCHEMAS
# ═══════════════════════════════════════════════════════════════════════════════

class MonthlyNormSchema(BaseModel):
    """One historical norm: first day of the month and the quantity."""

    month: date = Field(..., description="First day of the calendar month")
    quantity: float = Field(..., ge=0, description="Required quantity in that month")

    @field_validator("month", mode="before")
    @classmethod
    def parse_month_value(cls, v):
        """Accept "YYYY-MM", "YYYY-MM-DD", date or datetime."""
        if v is None:
            return v
        return parse_month(v)

    def to_norm(self) -> MonthlyNorm:
        return MonthlyNorm(month=self.month, quantity=self.quantity)


class RawIngredientDescriptor(BaseModel):
    """
    Ingredient row of a tech card.

    - sku / name: at least one must be non-empty
    - category / unit: raw sheet text (group and unit columns)
    - quantity: base norm per batch; NoValue and negatives become 0
    - monthly_norms: optional history, sheet order
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    sku: str = Field("", description="Material SKU as written in the sheet")
    name: str = Field("", description="Material name as written in the sheet")
    category: str = Field("", description="Material group text")
    unit: str = Field("", description="Unit text")
    quantity: float = Field(0.0, ge=0, description="Base norm per batch")
    monthly_norms: List[MonthlyNormSchema] = Field(default_factory=list)

    @field_validator("sku", "name", "category", "unit", mode="before")
    @classmethod
    def coerce_text(cls, v):
        if v is None:
            return ""
        if isinstance(v, float) and v != v:
            return ""
        return str(v)

    @field_validator("quantity", mode="before")
    @classmethod
    def parse_quantity(cls, v, info: ValidationInfo):
        """Normalize raw cell text with the row's hints."""
        data = info.data
        value = normalize(v, data.get("unit", ""), data.get("category", ""), data.get("name", ""))
        if value is None:
            return 0.0
        return max(0.0, value)

    @field_validator("monthly_norms", mode="before")
    @classmethod
    def parse_monthly_norms(cls, v, info: ValidationInfo):
        """
        Accept dicts with "date"/"month" keys, MonthlyNorm objects, or None.

        Quantities go through the same normalizer as the base norm; entries
        without a positive value are dropped.
        """
        if v is None:
            return []
        data = info.data
        hints = (data.get("unit", ""), data.get("category", ""), data.get("name", ""))
        out = []
        for item in v:
            if isinstance(item, MonthlyNorm):
                month, raw = item.month, item.quantity
            elif isinstance(item, dict):
                month = item["month"] if "month" in item else item.get("date")
                raw = item.get("quantity")
            else:
                out.append(item)
                continue
            value = normalize(raw, *hints)
            if value is None or value <= 0:
                continue
            out.append({"month": month, "quantity": value})
        return out

    @model_validator(mode="after")
    def require_identity(self):
        if not self.sku and not self.name:
            raise ValueError("ingredient row needs a SKU or a name")
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.sku

    def norms(self) -> List[MonthlyNorm]:
        return [n.to_norm() for n in self.monthly_norms]


class TechCardRow(BaseModel):
    """One finished good (GP) with its ingredient rows, in sheet order."""

    gp_sku: str = Field("", description="Finished-good SKU")
    gp_name: str = Field("", description="Finished-good name")
    ingredients: List[RawIngredientDescriptor] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return self.gp_sku or self.gp_name


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT SCHEMAS
# ═══════════════════════════════════════════════════════════════════════════════

class ImportDiagnostics(BaseModel):
    """Aggregate failure signal of an import batch."""

    found_count: int = 0
    duplicate_count: int = 0
    created_count: int = 0
    missing_count: int = 0
    missing_samples: List[str] = Field(default_factory=list)
    empty_recipes: List[str] = Field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {
            "found": self.found_count,
            "duplicates": self.duplicate_count,
            "created": self.created_count,
            "missing": self.missing_count,
        }


class ImportResult(BaseModel):
    """Outcome of a tech-card import batch."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    imported_count: int = 0
    failed_count: int = 0
    recipes: List[Any] = Field(default_factory=list)
    catalog: Optional[Any] = Field(None, description="Working catalog after provisioning")
    diagnostics: ImportDiagnostics = Field(default_factory=ImportDiagnostics)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    record_ids: List[str] = Field(default_factory=list)
    source_file: str = "unknown"

    def recipe_list(self) -> List[Recipe]:
        return list(self.recipes)
