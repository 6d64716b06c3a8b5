"""
════════════════════════════════════════════════════════════════════════════════
MATERIAL RESOLVER - Map tech-card (SKU, name) pairs onto catalog materials
════════════════════════════════════════════════════════════════════════════════

Tiers, first tier with at least one hit wins:
    1. exact SKU (case-insensitive)
    2. exact name (case-insensitive)
    3. fuzzy name: containment either way, or keyword overlap for long names
    4. fuzzy SKU: containment either way

More than one hit fans out: one ResolvedIngredient per material, all flagged
as duplicates. No hit: provision a new material through the CatalogProvider
(keyed by the trimmed SKU); failing that, a placeholder with fallback metadata.

The catalog is an explicit immutable handle. resolve() returns the catalog
to use for the next row, which contains any material provisioned here.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from techcards.config import PlannerSettings
from techcards.models_common import (
    CanonicalRef,
    FallbackInfo,
    Material,
    MaterialCatalog,
    MaterialCategory,
    MaterialUnit,
    PlaceholderRef,
    ResolvedIngredient,
    normalize_key,
)
from techcards.ops_ingestion.numeric import is_integer_class, parse_unit
from techcards.ops_ingestion.schemas import RawIngredientDescriptor

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# CATALOG PROVIDER
# ═══════════════════════════════════════════════════════════════════════════════

class CatalogWriteError(Exception):
    """Raised by a CatalogProvider when it rejects a new material."""
    def __init__(self, message: str, sku: str = ""):
        super().__init__(message)
        self.sku = sku


class CatalogProvider(ABC):
    """
    External material catalog.

    Lookups return materials in catalog order. create_material() either
    returns the new Material, returns None, or raises CatalogWriteError.
    """

    @abstractmethod
    def find_by_sku(self, sku: str) -> List[Material]:
        ...

    @abstractmethod
    def find_by_name(self, name: str) -> List[Material]:
        ...

    @abstractmethod
    def create_material(self, sku: str, name: str, category: str, unit: str) -> Optional[Material]:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# OUTCOME
# ═══════════════════════════════════════════════════════════════════════════════

class OutcomeKind(str, Enum):
    MATCHES = "matches"
    PROVISIONED = "provisioned"
    UNRESOLVED = "unresolved"


class MatchTier(int, Enum):
    SKU_EXACT = 1
    NAME_EXACT = 2
    NAME_FUZZY = 3
    SKU_FUZZY = 4


@dataclass(frozen=True)
class ResolutionOutcome:
    """Result of resolving one descriptor."""
    kind: OutcomeKind
    descriptor: RawIngredientDescriptor
    materials: Tuple[Material, ...] = ()
    match_tier: Optional[MatchTier] = None
    reason: str = ""

    @property
    def is_duplicate(self) -> bool:
        return self.kind == OutcomeKind.MATCHES and len(self.materials) > 1

    @property
    def provisioned(self) -> Optional[Material]:
        if self.kind == OutcomeKind.PROVISIONED:
            return self.materials[0]
        return None

    def to_ingredients(self) -> List[ResolvedIngredient]:
        """Ingredient records for this descriptor (fan-out on duplicates)."""
        d = self.descriptor
        fallback = FallbackInfo(sku=d.sku, name=d.name)
        norms = d.norms()

        if self.kind == OutcomeKind.UNRESOLVED:
            return [
                ResolvedIngredient(
                    material=PlaceholderRef(sku=d.sku, name=d.name),
                    quantity=d.quantity,
                    monthly_norms=norms,
                    fallback=fallback,
                )
            ]

        duplicate = self.is_duplicate
        auto_created = self.kind == OutcomeKind.PROVISIONED
        return [
            ResolvedIngredient(
                material=CanonicalRef(material_id=m.material_id),
                quantity=d.quantity,
                monthly_norms=norms,
                is_duplicate_sku=duplicate,
                is_auto_created=auto_created,
                fallback=fallback,
            )
            for m in self.materials
        ]


# ═══════════════════════════════════════════════════════════════════════════════
# MATCHING
# ═══════════════════════════════════════════════════════════════════════════════

def _contains_either(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a in b or b in a


def _keywords(text: str, min_length: int) -> List[str]:
    return [w for w in text.split(" ") if len(w) > min_length]


def names_match_fuzzy(descriptor_name: str, catalog_name: str) -> bool:
    """
    Tier-3 name test on normalized keys.

    Containment either way, or, for descriptor names longer than
    fuzzy_min_name_length, enough long descriptor words find a catalog word
    that contains them or is contained by them.
    """
    config = PlannerSettings.get_config()
    a = normalize_key(descriptor_name)
    b = normalize_key(catalog_name)
    if _contains_either(a, b):
        return True
    if len(a) <= config.fuzzy_min_name_length or not b:
        return False

    words = _keywords(a, config.fuzzy_min_word_length)
    if not words:
        return False
    catalog_words = _keywords(b, config.fuzzy_min_word_length)
    hits = sum(1 for w in words if any(_contains_either(w, cw) for cw in catalog_words))
    return hits >= config.fuzzy_word_overlap * len(words)


def find_matches(
    descriptor: RawIngredientDescriptor,
    catalog: MaterialCatalog,
    max_tier: MatchTier = MatchTier.SKU_FUZZY,
) -> Tuple[List[Material], Optional[MatchTier]]:
    """Run tiers 1..max_tier; return the hits of the first productive tier."""
    sku = descriptor.sku.strip()
    name = descriptor.name.strip()

    if sku:
        hits = catalog.find_by_sku(sku)
        if hits:
            return hits, MatchTier.SKU_EXACT

    if name and max_tier >= MatchTier.NAME_EXACT:
        hits = catalog.find_by_name(name)
        if hits:
            return hits, MatchTier.NAME_EXACT

    if name and max_tier >= MatchTier.NAME_FUZZY:
        hits = [m for m in catalog if names_match_fuzzy(name, m.name)]
        if hits:
            return hits, MatchTier.NAME_FUZZY

    if sku and max_tier >= MatchTier.SKU_FUZZY:
        key = normalize_key(sku)
        hits = [m for m in catalog if _contains_either(key, normalize_key(m.sku))]
        if hits:
            return hits, MatchTier.SKU_FUZZY

    return [], None


# ═══════════════════════════════════════════════════════════════════════════════
# PROVISIONING
# ═══════════════════════════════════════════════════════════════════════════════

_CATEGORY_RULES = [
    (MaterialCategory.TEA_BULK, re.compile(r"сировин|сырь|сырье|raw|blend|купаж|чай|tea", re.IGNORECASE)),
    (MaterialCategory.PACKAGING_CARDBOARD, re.compile(r"картон|гофро|пакуван|упаков|cardboard|packag", re.IGNORECASE)),
    (MaterialCategory.LABEL, re.compile(r"етикет|этикет|ярлик|ярлык|стикер|наклейк|label|sticker", re.IGNORECASE)),
    (MaterialCategory.PACKAGING_CRATE, re.compile(r"ящик|короб|тара|crate|box", re.IGNORECASE)),
]


def derive_category(group_text: str) -> str:
    """Category tag for a provisioned material from the sheet's group text."""
    text = group_text or ""
    for category, pattern in _CATEGORY_RULES:
        if pattern.search(text):
            return category.value
    return MaterialCategory.OTHER.value


def derive_unit(descriptor: RawIngredientDescriptor) -> str:
    """Unit of a provisioned material: pcs, kg or g."""
    if is_integer_class(descriptor.unit, descriptor.category, descriptor.name):
        return MaterialUnit.PIECE.value
    unit = parse_unit(descriptor.unit)
    if unit == MaterialUnit.GRAM.value:
        return unit
    return MaterialUnit.KILOGRAM.value


# ═══════════════════════════════════════════════════════════════════════════════
# RESOLVER
# ═══════════════════════════════════════════════════════════════════════════════

class MaterialResolver:
    """
    Tiered resolver bound to an optional CatalogProvider.

    Without a provider nothing is provisioned; unmatched rows come back
    unresolved. One resolver instance serves one in-order import pass.
    """

    def __init__(self, provider: Optional[CatalogProvider] = None):
        self.provider = provider

    def resolve(
        self,
        descriptor: RawIngredientDescriptor,
        catalog: MaterialCatalog,
    ) -> Tuple[ResolutionOutcome, MaterialCatalog]:
        """Resolve one descriptor; return the outcome and the catalog for the next row."""
        hits, tier = find_matches(descriptor, catalog)
        if hits:
            if len(hits) > 1:
                logger.debug(
                    f"Duplicate match for {descriptor.sku!r}/{descriptor.name!r}: "
                    f"{len(hits)} materials (tier {tier.value})"
                )
            return (
                ResolutionOutcome(
                    kind=OutcomeKind.MATCHES,
                    descriptor=descriptor,
                    materials=tuple(hits),
                    match_tier=tier,
                ),
                catalog,
            )
        return self._provision(descriptor, catalog)

    def _provision(
        self,
        descriptor: RawIngredientDescriptor,
        catalog: MaterialCatalog,
    ) -> Tuple[ResolutionOutcome, MaterialCatalog]:
        sku = descriptor.sku.strip()
        if not sku:
            return self._unresolved(descriptor, catalog, "no SKU to provision")
        if self.provider is None:
            return self._unresolved(descriptor, catalog, "provisioning disabled")

        name = descriptor.name.strip() or f"Material {sku}"
        category = derive_category(descriptor.category)
        unit = derive_unit(descriptor)
        try:
            material = self.provider.create_material(sku, name, category, unit)
        except CatalogWriteError as e:
            logger.warning(f"Provisioning rejected for SKU {sku}: {e}")
            return self._unresolved(descriptor, catalog, f"catalog write rejected: {e}")

        if material is None:
            logger.warning(f"Provisioning returned nothing for SKU {sku}")
            return self._unresolved(descriptor, catalog, "catalog write returned nothing")

        logger.info(f"Provisioned material {material.material_id} (SKU {sku}, {category}, {unit})")
        return (
            ResolutionOutcome(
                kind=OutcomeKind.PROVISIONED,
                descriptor=descriptor,
                materials=(material,),
            ),
            catalog.with_material(material),
        )

    @staticmethod
    def _unresolved(descriptor, catalog, reason):
        logger.warning(f"Unresolved material {descriptor.sku!r} - {descriptor.name!r}: {reason}")
        return (
            ResolutionOutcome(kind=OutcomeKind.UNRESOLVED, descriptor=descriptor, reason=reason),
            catalog,
        )


def resolve(
    descriptor: RawIngredientDescriptor,
    catalog: MaterialCatalog,
    provider: Optional[CatalogProvider] = None,
) -> Tuple[ResolutionOutcome, MaterialCatalog]:
    """Shortcut for MaterialResolver(provider).resolve(descriptor, catalog)."""
    return MaterialResolver(provider).resolve(descriptor, catalog)
