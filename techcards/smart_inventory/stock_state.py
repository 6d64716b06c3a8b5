"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    STOCK SNAPSHOT
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Read-only view of on-hand stock, aggregated per material across warehouses.

Model:
──────
    stock_global[material] = Σ(quantity[material, w] for w in warehouses)

The capacity calculator only reads this view; callers are responsible for how
fresh it is.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Mapping, Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)

STOCK_COLUMNS = ["material_id", "warehouse_id", "quantity"]


# ═══════════════════════════════════════════════════════════════════════════════
# PROVIDER INTERFACE
# ═══════════════════════════════════════════════════════════════════════════════

class StockProvider(ABC):
    """Anything that can report on-hand stock summed across locations."""

    @abstractmethod
    def aggregate_by_material(self, material_id: str) -> float:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# SNAPSHOT
# ═══════════════════════════════════════════════════════════════════════════════

class StockSnapshot(StockProvider):
    """
    Immutable per-material totals.

    Built from (material_id, warehouse_id, quantity) entries, a
    {material_id: quantity} mapping, or a DataFrame with those columns.
    """

    def __init__(self, totals: Optional[Mapping[str, float]] = None):
        self._totals: Dict[str, float] = dict(totals or {})

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> StockSnapshot:
        """
        Aggregate a stock table.

        Args:
            df: columns material_id, quantity (warehouse_id optional)

        Returns:
            StockSnapshot with one total per material
        """
        if df is None or df.empty:
            return cls()

        missing = {"material_id", "quantity"} - set(df.columns)
        if missing:
            raise ValueError(f"Stock table is missing columns: {sorted(missing)}")

        frame = df.copy()
        frame["material_id"] = frame["material_id"].astype(str)
        frame["quantity"] = pd.to_numeric(frame["quantity"], errors="coerce").fillna(0.0)
        totals = frame.groupby("material_id", sort=False)["quantity"].sum()
        return cls({k: float(v) for k, v in totals.items()})

    @classmethod
    def from_entries(cls, entries: Iterable[Any]) -> StockSnapshot:
        """Entries are (material_id, warehouse_id, quantity) tuples or dicts."""
        records = []
        for entry in entries:
            if isinstance(entry, Mapping):
                records.append({
                    "material_id": entry["material_id"],
                    "warehouse_id": entry.get("warehouse_id", ""),
                    "quantity": entry.get("quantity", 0.0),
                })
            else:
                material_id, warehouse_id, quantity = entry
                records.append({
                    "material_id": material_id,
                    "warehouse_id": warehouse_id,
                    "quantity": quantity,
                })
        return cls.from_dataframe(pd.DataFrame(records, columns=STOCK_COLUMNS))

    @classmethod
    def build(cls, source: Union[StockSnapshot, pd.DataFrame, Mapping[str, float], Iterable[Any], None]) -> StockSnapshot:
        """Coerce any supported stock source into a snapshot."""
        if source is None:
            return cls()
        if isinstance(source, StockSnapshot):
            return source
        if isinstance(source, pd.DataFrame):
            return cls.from_dataframe(source)
        if isinstance(source, Mapping):
            return cls({str(k): float(v) for k, v in source.items()})
        return cls.from_entries(source)

    def aggregate_by_material(self, material_id: str) -> float:
        """Total on hand for one material; 0 when unknown."""
        if material_id is None:
            return 0.0
        return self._totals.get(material_id, 0.0)

    def total(self) -> float:
        return float(sum(self._totals.values()))

    def __len__(self) -> int:
        return len(self._totals)

    def __repr__(self) -> str:
        return f"StockSnapshot(materials={len(self._totals)}, total={self.total():.2f})"
