"""
════════════════════════════════════════════════════════════════════════════════
NORMS - Effective per-batch quantity of an ingredient for a calendar month
════════════════════════════════════════════════════════════════════════════════

Fallback order:
    current  norm of the reference month, quantity > 0
    recent   latest month strictly before the reference month, quantity > 0
    base     the ingredient's base quantity

Zero-quantity entries count as missing data. With duplicate months the
first entry in stored order wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Union

from techcards.models_common import ResolvedIngredient, month_key, parse_month

logger = logging.getLogger(__name__)


class NormSource(str, Enum):
    CURRENT = "current"
    RECENT = "recent"
    BASE = "base"


@dataclass(frozen=True)
class EffectiveNorm:
    """Selected quantity and where it came from."""
    value: float
    source: NormSource
    source_month: Optional[date] = None

    def to_dict(self):
        return {
            "value": self.value,
            "source": self.source.value,
            "source_month": self.source_month.isoformat() if self.source_month else None,
        }


def effective_quantity(
    ingredient: ResolvedIngredient,
    reference_month: Union[str, date],
) -> EffectiveNorm:
    """Pick the norm that applies to `ingredient` in `reference_month`."""
    base = EffectiveNorm(value=ingredient.quantity, source=NormSource.BASE)
    if not ingredient.monthly_norms:
        return base

    ref_key = month_key(reference_month)

    recent = None
    for norm in ingredient.monthly_norms:
        if norm.quantity is None or norm.quantity <= 0:
            continue
        key = norm.month_key
        if key == ref_key:
            return EffectiveNorm(value=norm.quantity, source=NormSource.CURRENT, source_month=norm.month)
        # strict > keeps the first of several entries for the same month
        if key < ref_key and (recent is None or key > recent.month_key):
            recent = norm

    if recent is not None:
        return EffectiveNorm(value=recent.quantity, source=NormSource.RECENT, source_month=recent.month)
    return base


class NormResolver:
    """Binds a reference month so the calculator can resolve line by line."""

    def __init__(self, reference_month: Union[str, date]):
        self.reference_month = parse_month(reference_month)

    def resolve(self, ingredient: ResolvedIngredient) -> EffectiveNorm:
        return effective_quantity(ingredient, self.reference_month)

    __call__ = resolve
