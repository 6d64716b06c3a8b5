"""
Tech Cards - Common Models
==========================

Domain structures shared by import and analysis:

- Material / MaterialCatalog: canonical inventory entities and the
  in-memory index used while resolving an import batch
- MaterialRef: CanonicalRef (real material id) or PlaceholderRef (no
  canonical match, carries the source SKU/name)
- MonthlyNorm, ResolvedIngredient, Recipe: a resolved bill of materials
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union

import pandas as pd


# ═══════════════════════════════════════════════════════════════════════════════
# MATERIALS
# ═══════════════════════════════════════════════════════════════════════════════

class MaterialCategory(str, Enum):
    """Category tag of a canonical material."""
    TEA_BULK = "tea_bulk"
    FLAVOR = "flavor"
    PACKAGING_CONSUMABLE = "packaging_consumable"
    PACKAGING_CARDBOARD = "packaging_cardboard"
    PACKAGING_BOX = "packaging_box"
    PACKAGING_CRATE = "packaging_crate"
    LABEL = "label"
    OTHER = "other"


class MaterialUnit(str, Enum):
    """Units a provisioned material may carry."""
    PIECE = "pcs"
    KILOGRAM = "kg"
    GRAM = "g"


@dataclass(frozen=True)
class Material:
    """Canonical inventory entity."""
    material_id: str
    sku: str
    name: str
    unit: str = MaterialUnit.KILOGRAM.value
    category: str = MaterialCategory.OTHER.value


def normalize_key(text: Optional[str]) -> str:
    """Lowercase and collapse whitespace; used for every catalog lookup."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", str(text)).strip().lower()


@dataclass(frozen=True)
class MaterialCatalog:
    """
    Snapshot of known materials with SKU/name indexes.

    Immutable: with_material() returns a new catalog, so a resolver pass hands
    the grown catalog back to the caller instead of mutating shared state.
    """
    materials: Tuple[Material, ...] = ()
    _by_id: Dict[str, Material] = field(default_factory=dict, init=False, repr=False, compare=False)
    _by_sku: Dict[str, List[Material]] = field(default_factory=dict, init=False, repr=False, compare=False)
    _by_name: Dict[str, List[Material]] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        materials = tuple(self.materials)
        object.__setattr__(self, "materials", materials)
        for material in materials:
            self._index(material)

    def _index(self, material: Material) -> None:
        self._by_id.setdefault(material.material_id, material)
        sku_key = normalize_key(material.sku)
        if sku_key:
            self._by_sku.setdefault(sku_key, []).append(material)
        name_key = normalize_key(material.name)
        if name_key:
            self._by_name.setdefault(name_key, []).append(material)

    @classmethod
    def from_materials(cls, materials) -> MaterialCatalog:
        return cls(materials=tuple(materials))

    def with_material(self, material: Material) -> MaterialCatalog:
        """Return a new catalog that also contains `material`."""
        return MaterialCatalog(materials=self.materials + (material,))

    def get(self, material_id: str) -> Optional[Material]:
        return self._by_id.get(material_id)

    def find_by_sku(self, sku: Optional[str]) -> List[Material]:
        """Exact case-insensitive SKU lookup, catalog order."""
        return list(self._by_sku.get(normalize_key(sku), []))

    def find_by_name(self, name: Optional[str]) -> List[Material]:
        """Exact case-insensitive name lookup, catalog order."""
        return list(self._by_name.get(normalize_key(name), []))

    def __iter__(self) -> Iterator[Material]:
        return iter(self.materials)

    def __len__(self) -> int:
        return len(self.materials)

    def __contains__(self, material_id: object) -> bool:
        return material_id in self._by_id


# ═══════════════════════════════════════════════════════════════════════════════
# MATERIAL REFERENCES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CanonicalRef:
    """Reference to a real catalog material."""
    material_id: str


@dataclass(frozen=True)
class PlaceholderRef:
    """No canonical material backs this record; SKU/name come from the source."""
    sku: str
    name: str


MaterialRef = Union[CanonicalRef, PlaceholderRef]


@dataclass(frozen=True)
class FallbackInfo:
    """Source SKU/name kept next to an ingredient for display and stock lookup."""
    sku: str = ""
    name: str = ""


# ═══════════════════════════════════════════════════════════════════════════════
# NORMS & RECIPES
# ═══════════════════════════════════════════════════════════════════════════════

_MONTH_RE = re.compile(r"^\s*(\d{4})-(\d{1,2})(?:-(\d{1,2}))?")


def parse_month(value: Union[str, date, datetime, pd.Timestamp]) -> date:
    """
    Normalize a month reference to the first day of that month.

    Accepts "YYYY-MM", "YYYY-MM-DD", date, datetime and pandas Timestamp.
    """
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        return date(value.year, value.month, 1)
    if isinstance(value, date):
        return date(value.year, value.month, 1)
    match = _MONTH_RE.match(str(value))
    if not match:
        raise ValueError(f"Not a calendar month: {value!r}")
    year, month = int(match.group(1)), int(match.group(2))
    return date(year, month, 1)


def month_key(value: Union[str, date, datetime, pd.Timestamp]) -> str:
    """ISO "YYYY-MM" key; lexicographic order equals chronological order."""
    month = parse_month(value)
    return f"{month.year:04d}-{month.month:02d}"


@dataclass(frozen=True)
class MonthlyNorm:
    """Required quantity of one ingredient in one calendar month."""
    month: date
    quantity: float

    def __post_init__(self):
        object.__setattr__(self, "month", parse_month(self.month))

    @property
    def month_key(self) -> str:
        return f"{self.month.year:04d}-{self.month.month:02d}"

    def to_dict(self) -> Dict[str, object]:
        return {"date": self.month.isoformat(), "quantity": self.quantity}


@dataclass(frozen=True)
class ResolvedIngredient:
    """
    Stored ingredient of a Recipe.

    A PlaceholderRef always has fallback metadata equal to its own SKU/name;
    for a CanonicalRef the fallback is informational (and drives the
    secondary stock lookup).
    """
    material: MaterialRef
    quantity: float
    monthly_norms: Tuple[MonthlyNorm, ...] = ()
    is_duplicate_sku: bool = False
    is_auto_created: bool = False
    fallback: Optional[FallbackInfo] = None
    tolerance: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "monthly_norms", tuple(self.monthly_norms))
        if isinstance(self.material, PlaceholderRef):
            own = FallbackInfo(sku=self.material.sku, name=self.material.name)
            if self.fallback is None:
                object.__setattr__(self, "fallback", own)
            elif self.fallback != own:
                raise ValueError(
                    f"Placeholder {self.material.sku!r}/{self.material.name!r} "
                    f"has mismatched fallback {self.fallback.sku!r}/{self.fallback.name!r}"
                )

    @property
    def is_resolved(self) -> bool:
        return isinstance(self.material, CanonicalRef)

    @property
    def material_id(self) -> Optional[str]:
        if isinstance(self.material, CanonicalRef):
            return self.material.material_id
        return None


@dataclass(frozen=True)
class Recipe:
    """Bill of materials for one finished good, per production batch."""
    recipe_id: str
    name: str
    output: MaterialRef
    output_quantity: float = 1.0
    ingredients: Tuple[ResolvedIngredient, ...] = ()
    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "ingredients", tuple(self.ingredients))

    def with_ingredients(self, ingredients) -> Recipe:
        return replace(self, ingredients=tuple(ingredients))
