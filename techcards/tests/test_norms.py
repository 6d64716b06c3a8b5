"""
Tests for monthly norm resolution (M1-M2)
"""
from datetime import date

from techcards.models_common import CanonicalRef, MonthlyNorm, ResolvedIngredient
from techcards.smart_inventory.norms import NormResolver, NormSource, effective_quantity


def _ingredient(base=1.0, norms=()):
    return ResolvedIngredient(
        material=CanonicalRef("m-black"),
        quantity=base,
        monthly_norms=[MonthlyNorm(month, qty) for month, qty in norms],
    )


class TestM1_FallbackOrder:
    """M1: current, then recent, then base."""

    def test_empty_history_is_base(self):
        """M1.1: no history always gives the base quantity."""
        result = effective_quantity(_ingredient(base=4.0), "2024-03")
        assert result.value == 4.0
        assert result.source == NormSource.BASE
        assert result.source_month is None

    def test_current_month(self):
        """M1.2: 2024-01=5, 2024-03=7, reference 2024-03 -> 7 current."""
        ing = _ingredient(norms=[("2024-01-01", 5), ("2024-03-01", 7)])
        result = effective_quantity(ing, "2024-03")
        assert (result.value, result.source) == (7, NormSource.CURRENT)
        assert result.source_month == date(2024, 3, 1)

    def test_recent_month(self):
        """M1.3: reference 2024-04 -> 7 recent (latest past month)."""
        ing = _ingredient(norms=[("2024-01-01", 5), ("2024-03-01", 7)])
        result = effective_quantity(ing, "2024-04")
        assert (result.value, result.source) == (7, NormSource.RECENT)
        assert result.source_month == date(2024, 3, 1)

    def test_recent_ignores_storage_order(self):
        """M1.4: the latest month wins even when stored first."""
        ing = _ingredient(norms=[("2024-03-01", 7), ("2023-12-01", 9), ("2024-01-01", 5)])
        assert effective_quantity(ing, "2024-06").value == 7

    def test_future_months_ignored(self):
        """M1.5: only months before the reference count as recent."""
        ing = _ingredient(base=2.0, norms=[("2024-05-01", 8)])
        result = effective_quantity(ing, "2024-04")
        assert result.source == NormSource.BASE
        assert result.value == 2.0

    def test_crosses_year_boundary(self):
        """M1.6: ISO ordering holds across years."""
        ing = _ingredient(norms=[("2023-11-01", 3), ("2023-12-01", 4)])
        assert effective_quantity(ing, "2024-01").value == 4


class TestM2_ZeroAndDuplicates:
    """M2: zero entries and repeated months."""

    def test_zero_current_falls_through_to_recent(self):
        """M2.1: a zero for the current month is missing data."""
        ing = _ingredient(norms=[("2024-02-01", 6), ("2024-03-01", 0)])
        result = effective_quantity(ing, "2024-03")
        assert (result.value, result.source) == (6, NormSource.RECENT)

    def test_zero_current_falls_through_to_base(self):
        """M2.2: zero current and no past data gives base."""
        ing = _ingredient(base=1.5, norms=[("2024-03-01", 0)])
        result = effective_quantity(ing, "2024-03")
        assert (result.value, result.source) == (1.5, NormSource.BASE)

    def test_duplicate_current_first_wins(self):
        """M2.3: two entries for the same month -> first in stored order."""
        ing = _ingredient(norms=[("2024-03-01", 7), ("2024-03-01", 9)])
        assert effective_quantity(ing, "2024-03").value == 7

    def test_duplicate_recent_first_wins(self):
        """M2.4: same rule for the recent month."""
        ing = _ingredient(norms=[("2024-02-01", 4), ("2024-02-01", 6)])
        assert effective_quantity(ing, "2024-03").value == 4

    def test_resolver_accepts_dates(self):
        """M2.5: reference may be any day of the month."""
        ing = _ingredient(norms=[("2024-03-01", 7)])
        resolver = NormResolver(date(2024, 3, 17))
        assert resolver.reference_month == date(2024, 3, 1)
        assert resolver(ing).source == NormSource.CURRENT
