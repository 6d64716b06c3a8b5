"""
════════════════════════════════════════════════════════════════════════════════
EXCEL PARSER - Tech-card sheets with flexible column mapping
════════════════════════════════════════════════════════════════════════════════

Features:
- Reads the sheet with pandas (header=None, raw cells)
- Finds the header row by keyword count
- Maps columns through column_aliases.yaml (exact match, then contains)
- Detects monthly-norm date columns (DD.MM.YYYY, DD.MM.YY, Excel serials)
- Groups ingredient rows under their finished good (GP)
- Returns TechCardRow schemas plus a list of errors
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
import yaml
from pydantic import ValidationError

from techcards.config import PlannerSettings
from techcards.ops_ingestion.numeric import normalize
from techcards.ops_ingestion.schemas import TechCardRow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

COLUMN_ALIASES_PATH = Path(__file__).parent / "data" / "column_aliases.yaml"

_column_aliases_cache: Optional[Dict[str, Any]] = None


def _load_column_aliases() -> Dict[str, Any]:
    """Load column aliases from the YAML file (cached)."""
    global _column_aliases_cache

    if _column_aliases_cache is not None:
        return _column_aliases_cache

    try:
        if COLUMN_ALIASES_PATH.exists():
            with open(COLUMN_ALIASES_PATH, "r", encoding="utf-8") as f:
                _column_aliases_cache = yaml.safe_load(f) or _get_default_aliases()
        else:
            logger.warning(f"Column aliases file not found: {COLUMN_ALIASES_PATH}")
            _column_aliases_cache = _get_default_aliases()
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load column aliases: {e}")
        _column_aliases_cache = _get_default_aliases()

    return _column_aliases_cache


def _get_default_aliases() -> Dict[str, Any]:
    """Built-in aliases (fallback)."""
    return {
        "tech_cards": {
            "header_keywords": [
                "артикул гп", "назва гп", "название гп", "артикул ксм",
                "назва ксм", "эталон", "норма", "ingredients", "компонент",
            ],
            "columns": {
                "gp_sku": ["Артикул ГП", "SKU ГП", "Код ГП", "Item Code", "Артикул"],
                "gp_name": ["Назва ГП", "Название ГП", "Наименование ГП", "Item Name"],
                "material_category": ["Група КСМ", "Группа КСМ", "Category"],
                "material_sku": ["Артикул КСМ", "SKU КСМ", "Component Code", "Code"],
                "material_name": ["Назва КСМ", "Название КСМ", "Component Name"],
                "unit": ["Од. вим.", "Единица измерения", "Unit", "UOM"],
                "norm": ["Еталон", "Эталон", "Норма", "Norm", "Quantity"],
            },
        },
    }


# ═══════════════════════════════════════════════════════════════════════════════
# CELLS & HEADERS
# ═══════════════════════════════════════════════════════════════════════════════

_DATE_FULL_RE = re.compile(r"(\d{1,2})[./\-\s](\d{1,2})[./\-\s](\d{4})")
_DATE_SHORT_RE = re.compile(r"(\d{1,2})[./\-\s](\d{1,2})[./\-\s](\d{2})")
_EXCEL_EPOCH = date(1899, 12, 30)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and np.isnan(value):
        return True
    return value is pd.NaT


def _cell_text(value: Any) -> str:
    """Text of a cell; whole floats lose their ".0" (SKU cells read as numbers)."""
    if _is_blank(value):
        return ""
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value).strip()


def _header_text(value: Any) -> str:
    return re.sub(r"\s+", " ", _cell_text(value)).strip()


def find_header_row(frame: pd.DataFrame, keywords: List[str], scan_rows: int) -> Optional[int]:
    """First row within `scan_rows` containing at least 2 header keywords."""
    for i in range(min(scan_rows, len(frame))):
        row_text = " ".join(_cell_text(v).lower() for v in frame.iloc[i].tolist())
        matches = sum(1 for kw in keywords if kw in row_text)
        if matches >= 2:
            logger.debug(f"Header row {i} ({matches} keyword matches)")
            return i
    return None


def find_column(headers: List[str], aliases: List[str]) -> int:
    """Index of the first header matching an alias; exact pass first, then contains. -1 if none."""
    lowered = [h.lower() for h in headers]
    names = [a.lower() for a in aliases]
    for name in names:
        if name in lowered:
            return lowered.index(name)
    for name in names:
        for idx, header in enumerate(lowered):
            if header and name in header:
                return idx
    return -1


def parse_header_month(raw_header: Any) -> Optional[date]:
    """Month (first day) encoded in a column header, or None."""
    if _is_blank(raw_header):
        return None
    if isinstance(raw_header, (pd.Timestamp, datetime, date)):
        return date(raw_header.year, raw_header.month, 1)
    if isinstance(raw_header, (int, float, np.integer, np.floating)) and not isinstance(raw_header, bool):
        if 35000 < raw_header < 60000:
            d = _EXCEL_EPOCH + timedelta(days=int(raw_header))
            return date(d.year, d.month, 1)
        return None

    text = _header_text(raw_header)
    match = _DATE_FULL_RE.search(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
    else:
        match = _DATE_SHORT_RE.search(text)
        if not match:
            return None
        day, month, year = (int(g) for g in match.groups())
        year += 2000

    if 1 <= day <= 31 and 1 <= month <= 12:
        return date(year, month, 1)
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# TECH CARD PARSING
# ═══════════════════════════════════════════════════════════════════════════════

def _map_tech_card_columns(headers: List[str]) -> Dict[str, int]:
    aliases = _load_column_aliases().get("tech_cards", {}).get("columns", {})
    mapping = {field: find_column(headers, names) for field, names in aliases.items()}
    for field in ("gp_sku", "gp_name", "material_category", "material_sku", "material_name", "unit", "norm"):
        mapping.setdefault(field, -1)

    if mapping["norm"] == -1:
        last = len(headers) - 1
        while last >= 0 and not headers[last]:
            last -= 1
        if last >= 0:
            mapping["norm"] = last
            logger.warning(f"Norm column not found by name; using last column {last} ({headers[last]!r})")
    return mapping


def _merge_ingredient(ingredients: List[Dict[str, Any]], item: Dict[str, Any]) -> None:
    """Append `item`, or fold it into an earlier row for the same material."""
    for existing in ingredients:
        same_sku = existing["sku"] and existing["sku"] == item["sku"]
        if same_sku or existing["name"] == item["name"]:
            if existing["quantity"] == 0 and item["quantity"] > 0:
                existing["quantity"] = item["quantity"]
            existing["monthly_norms"].extend(item["monthly_norms"])
            return
    ingredients.append(item)


def parse_tech_cards(frame: pd.DataFrame) -> Tuple[List[TechCardRow], List[str]]:
    """
    Parse a raw cell frame (read with header=None) into tech cards.

    Returns:
        (cards, errors): cards in sheet order, and error messages
    """
    if frame is None or frame.empty:
        return [], ["Sheet is empty"]

    aliases = _load_column_aliases().get("tech_cards", {})
    config = PlannerSettings.get_config()

    header_idx = find_header_row(frame, aliases.get("header_keywords", []), config.header_scan_rows)
    if header_idx is None:
        logger.warning("Header row not found by keywords; using row 0")
        header_idx = 0

    raw_headers = frame.iloc[header_idx].tolist()
    headers = [_header_text(h) for h in raw_headers]
    cols = _map_tech_card_columns(headers)

    if cols["material_sku"] == -1 and cols["material_name"] == -1:
        return [], ["Missing key columns: material SKU or material name"]

    skip = {cols["gp_sku"], cols["gp_name"], cols["material_sku"], cols["material_name"], cols["norm"]}
    date_columns: List[Tuple[int, date]] = []
    for idx, raw in enumerate(raw_headers):
        if idx in skip:
            continue
        month = parse_header_month(raw)
        if month is not None:
            date_columns.append((idx, month))
    logger.debug(f"Detected {len(date_columns)} monthly-norm columns")

    cards: Dict[str, Dict[str, Any]] = {}
    order: List[str] = []
    current: Optional[Dict[str, Any]] = None
    width = frame.shape[1]

    for _, series in frame.iloc[header_idx + 1:].iterrows():
        row = series.tolist()

        def cell(idx: int) -> Any:
            return row[idx] if 0 <= idx < width else None

        gp_sku = _cell_text(cell(cols["gp_sku"]))
        gp_name = _cell_text(cell(cols["gp_name"]))
        mat_sku = _cell_text(cell(cols["material_sku"]))
        mat_name = _cell_text(cell(cols["material_name"]))

        if not (gp_sku or gp_name or mat_sku or mat_name):
            continue

        if gp_sku or gp_name:
            key = gp_sku or gp_name
            if key not in cards:
                cards[key] = {"gp_sku": gp_sku, "gp_name": gp_name or gp_sku, "ingredients": []}
                order.append(key)
            current = cards[key]
        elif current is None:
            continue

        if not (mat_sku or mat_name):
            continue

        unit = _cell_text(cell(cols["unit"]))
        category = _cell_text(cell(cols["material_category"]))
        name = mat_name or mat_sku

        base = normalize(cell(cols["norm"]), unit, category, name)
        monthly = []
        for idx, month in date_columns:
            value = normalize(cell(idx), unit, category, name)
            if value is not None and value > 0:
                monthly.append({"month": month, "quantity": value})

        _merge_ingredient(current["ingredients"], {
            "sku": mat_sku,
            "name": name,
            "category": category,
            "unit": unit,
            "quantity": max(0.0, base) if base is not None else 0.0,
            "monthly_norms": monthly,
        })

    result: List[TechCardRow] = []
    errors: List[str] = []
    for key in order:
        try:
            result.append(TechCardRow(**cards[key]))
        except ValidationError as e:
            errors.append(f"Tech card {key}: {e.errors()[0]['msg']}")

    logger.info(f"Parsed {len(result)} tech cards (header row {header_idx})")
    return result, errors


def parse_tech_cards_excel(file_path: str | Path, sheet_name: Any = 0) -> Tuple[List[TechCardRow], List[str]]:
    """Read one sheet of an .xlsx file and parse its tech cards."""
    try:
        frame = pd.read_excel(file_path, sheet_name=sheet_name, header=None)
    except (OSError, ValueError) as e:
        return [], [f"Failed to read Excel: {e}"]
    return parse_tech_cards(frame)
