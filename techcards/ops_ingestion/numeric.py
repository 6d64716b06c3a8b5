"""
════════════════════════════════════════════════════════════════════════════════
NUMERIC CELLS - Locale-ambiguous quantities from tech-card sheets
════════════════════════════════════════════════════════════════════════════════

Sheets come from a locale where space is the thousands separator and comma the
decimal point, but dots show up both ways: "1.500" is 1.5 kg of tea or 1500
labels. The unit/category/name of the row decides.

Integer-class (pieces, labels, stickers, envelopes, boxes):
    every "." is a thousands separator, "," is the decimal point
    "2.124" -> 2124, "2.124.770" -> 2124770

Continuous-class (kg, g, l, ml, m):
    "1.500,50" -> 1500.5   (comma present: comma is decimal)
    "1.500.000" -> 1500000 (several dots: all thousands)
    "1.500" -> 1.5         (one dot, no comma: plain decimal)

NoValue is None.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Optional

import numpy as np

from techcards.config import PlannerSettings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# VOCABULARY
# ═══════════════════════════════════════════════════════════════════════════════

PIECE_UNIT_RE = re.compile(r"шт|pcs|штук|od|од", re.IGNORECASE)
PIECE_CATEGORY_RE = re.compile(r"label|sticker|envelope|box|картон|ярлик|стикер|конверт", re.IGNORECASE)
PIECE_NAME_RE = re.compile(r"ярлик|стикер|конверт", re.IGNORECASE)

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")

UNIT_ALIASES = {
    "шт": "pcs",
    "pcs": "pcs",
    "кг": "kg",
    "kg": "kg",
    "г": "g",
    "g": "g",
    "л": "l",
    "l": "l",
    "мл": "ml",
    "ml": "ml",
}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).lower().strip()


def is_integer_class(unit: Any = "", category: Any = "", name: Any = "") -> bool:
    """True when the row is counted in discrete pieces."""
    return bool(
        PIECE_UNIT_RE.search(_text(unit))
        or PIECE_CATEGORY_RE.search(_text(category))
        or PIECE_NAME_RE.search(_text(name))
    )


def parse_unit(unit_text: Any) -> str:
    """Map sheet unit text to a short unit code; blank/unknown -> default unit."""
    clean = _text(unit_text).rstrip(".")
    if clean in UNIT_ALIASES:
        return UNIT_ALIASES[clean]
    return PlannerSettings.get_config().default_unit


# ═══════════════════════════════════════════════════════════════════════════════
# NORMALIZER
# ═══════════════════════════════════════════════════════════════════════════════

def normalize(
    raw_value: Any,
    unit_hint: Any = "",
    category_hint: Any = "",
    name_hint: Any = "",
) -> Optional[float]:
    """
    Parse a sheet cell into a quantity.

    Returns None (NoValue) for empty cells and anything that does not parse;
    "-" is an explicit zero.
    """
    if raw_value is None or isinstance(raw_value, bool):
        return None

    # Cells pandas already typed as numbers
    if isinstance(raw_value, (int, float, np.integer, np.floating)):
        value = float(raw_value)
        return value if math.isfinite(value) else None

    text = re.sub(r"\s", "", str(raw_value))
    if text == "":
        return None
    if text == "-":
        return 0.0

    if is_integer_class(unit_hint, category_hint, name_hint):
        text = text.replace(".", "").replace(",", ".", 1)
    else:
        dot_count = text.count(".")
        if "," in text:
            text = text.replace(".", "").replace(",", ".", 1)
        elif dot_count > 1:
            text = text.replace(".", "")
        # one dot, no comma: standard decimal

    if not _NUMBER_RE.match(text):
        logger.warning(f"Unparseable numeric cell: {raw_value!r}")
        return None

    value = float(text)
    return value if math.isfinite(value) else None


class NumericNormalizer:
    """Callable wrapper bound to a row's hints, for column-wise parsing."""

    def __init__(self, unit_hint: Any = "", category_hint: Any = "", name_hint: Any = ""):
        self.unit_hint = unit_hint
        self.category_hint = category_hint
        self.name_hint = name_hint

    @property
    def integer_class(self) -> bool:
        return is_integer_class(self.unit_hint, self.category_hint, self.name_hint)

    def __call__(self, raw_value: Any) -> Optional[float]:
        return normalize(raw_value, self.unit_hint, self.category_hint, self.name_hint)
