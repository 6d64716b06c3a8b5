"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    TECH CARDS - SMART INVENTORY MODULE
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Analysis side of the tech-card pipeline:

1. **Norms**: effective per-batch quantity for a month (current, recent, base)
2. **Stock Snapshot**: read-only on-hand totals per material
3. **Capacity**: max-output (bottleneck) analysis and target-driven shortfalls

Mathematical Foundations:
───────────────────────
    max_batches = min_i floor(stock_i / norm_i)
    max_units   = max_batches * output_quantity

    batches_needed = target / output_quantity
    balance_i      = stock_i - norm_i * batches_needed

Dependencies:
    - pandas: aggregation and result exports
"""

from .norms import EffectiveNorm, NormResolver, NormSource, effective_quantity
from .stock_state import StockProvider, StockSnapshot
from .capacity import (
    AnalysisResult,
    CapacityCalculator,
    CapacityLine,
    LineStatus,
    PlanLine,
    PlanResult,
    analyze_recipe,
    plan_recipe,
)

__all__ = [
    "EffectiveNorm",
    "NormResolver",
    "NormSource",
    "effective_quantity",
    "StockProvider",
    "StockSnapshot",
    "AnalysisResult",
    "CapacityCalculator",
    "CapacityLine",
    "LineStatus",
    "PlanLine",
    "PlanResult",
    "analyze_recipe",
    "plan_recipe",
]
