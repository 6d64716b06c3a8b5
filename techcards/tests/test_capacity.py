"""
Tests for capacity analysis and forward planning (C1-C4)
"""
import pytest

from techcards.config import PlannerSettings
from techcards.models_common import (
    CanonicalRef,
    FallbackInfo,
    Material,
    MaterialCatalog,
    MonthlyNorm,
    PlaceholderRef,
    Recipe,
    ResolvedIngredient,
)
from techcards.smart_inventory.capacity import (
    CapacityCalculator,
    LineStatus,
    analyze_recipe,
    plan_recipe,
)
from techcards.smart_inventory.norms import NormSource
from techcards.smart_inventory.stock_state import StockSnapshot


def _recipe(*lines, output_quantity=1.0):
    return Recipe(
        recipe_id="r1",
        name="Test",
        output=CanonicalRef("gp"),
        output_quantity=output_quantity,
        ingredients=[ResolvedIngredient(material=CanonicalRef(mid), quantity=qty) for mid, qty in lines],
    )


class _DictStore:
    def __init__(self, *recipes):
        self.recipes = {r.recipe_id: r for r in recipes}

    def get_recipe(self, recipe_id):
        return self.recipes.get(recipe_id)


class TestC1_MaxOutput:
    """C1: bottleneck analysis."""

    def test_limiting_ingredient(self):
        """C1.1: A 10/batch of 100, B 5/batch of 30 -> 6 batches, B limits."""
        result = CapacityCalculator().analyze(_recipe(("A", 10), ("B", 5)), {"A": 100, "B": 30}, "2024-03")
        assert result.max_batches == 6
        assert result.max_output_units == 6
        assert result.limiting.material_id == "B"
        assert not result.unconstrained

    def test_output_quantity_scales_units(self):
        """C1.2: units = batches x output per batch."""
        result = CapacityCalculator().analyze(_recipe(("A", 10), output_quantity=25), {"A": 100}, "2024-03")
        assert result.max_batches == 10
        assert result.max_output_units == 250

    def test_empty_recipe_unconstrained(self):
        """C1.3: no ingredients -> explicit unconstrained flag."""
        result = CapacityCalculator().analyze(_recipe(), {}, "2024-03")
        assert result.unconstrained
        assert result.max_batches is None
        assert result.limiting is None

    def test_zero_norm_imposes_no_limit(self):
        """C1.4: ingredients with norm 0 are left out of the constraint set."""
        result = CapacityCalculator().analyze(_recipe(("A", 0), ("B", 5)), {"B": 50}, "2024-03")
        assert result.max_batches == 10
        free = [line for line in result.lines if line.unconstrained]
        assert [line.material_id for line in free] == ["A"]

        only_free = CapacityCalculator().analyze(_recipe(("A", 0)), {}, "2024-03")
        assert only_free.unconstrained

    def test_tie_goes_to_first_ingredient(self):
        """C1.5: equal max batches -> first in ingredient order limits."""
        result = CapacityCalculator().analyze(_recipe(("A", 1), ("B", 2), ("C", 1)), {"A": 4, "B": 8, "C": 9}, "2024-03")
        assert result.max_batches == 4
        assert result.limiting.material_id == "A"
        assert [line.material_id for line in result.lines] == ["A", "B", "C"]

    def test_floor_tolerates_float_error(self):
        """C1.6: 0.3 / 0.1 is 3 batches."""
        result = CapacityCalculator().analyze(_recipe(("A", 0.1)), {"A": 0.3}, "2024-03")
        assert result.max_batches == 3

    def test_monthly_norm_used(self, earl_grey_recipe, sample_stock):
        """C1.7: current-month norm drives the requirement."""
        result = CapacityCalculator().analyze(earl_grey_recipe, sample_stock, "2024-03")
        black = next(line for line in result.lines if line.material_id == "m-black")
        assert black.norm_source == NormSource.CURRENT
        assert black.per_batch == pytest.approx(0.052)
        assert black.available == pytest.approx(5.2)
        assert black.max_batches == 100
        # label: 1250 / 25 = 50 is the bottleneck
        assert result.limiting.material_id == "m-label"
        assert result.max_batches == 50

    def test_missing_recipe_and_bad_output(self):
        """C1.8: None recipe or output <= 0 gives no result."""
        calc = CapacityCalculator()
        assert calc.analyze(None, {}, "2024-03") is None
        assert calc.analyze(_recipe(("A", 1), output_quantity=0), {"A": 1}, "2024-03") is None


class TestC2_Status:
    """C2: per-ingredient display status."""

    def test_thresholds(self):
        """C2.1: <=0 critical, <10 warning, else ok."""
        result = CapacityCalculator().analyze(
            _recipe(("A", 1), ("B", 1), ("C", 1)), {"A": 0, "B": 9, "C": 10}, "2024-03"
        )
        status = {line.material_id: line.status for line in result.lines}
        assert status == {"A": LineStatus.CRITICAL, "B": LineStatus.WARNING, "C": LineStatus.OK}

    def test_threshold_from_settings(self):
        """C2.2: warning threshold comes from the planner settings."""
        PlannerSettings.override(warning_batches=3)
        result = CapacityCalculator().analyze(_recipe(("A", 1)), {"A": 5}, "2024-03")
        assert result.lines[0].status == LineStatus.OK

    def test_dataframe_export(self):
        """C2.3: lines export with the limiting flag."""
        result = CapacityCalculator().analyze(_recipe(("A", 10), ("B", 5)), {"A": 100, "B": 30}, "2024-03")
        df = result.to_dataframe()
        assert list(df["material_id"]) == ["B", "A"]
        assert list(df["limiting"]) == [True, False]


class TestC3_StockLookup:
    """C3: stock aggregation and the secondary lookup by SKU."""

    def test_aggregates_warehouses(self):
        """C3.1: all entries for a material are summed."""
        stock = StockSnapshot.from_entries([("A", "w1", 40), ("A", "w2", 60), ("B", "w1", 30)])
        assert stock.aggregate_by_material("A") == 100
        assert stock.total() == 130
        result = CapacityCalculator().analyze(_recipe(("A", 10), ("B", 5)), stock, "2024-03")
        assert result.max_batches == 6

    def test_secondary_lookup_by_sku(self):
        """C3.2: empty own stock -> canonical material sharing the fallback SKU."""
        catalog = MaterialCatalog.from_materials([
            Material("dup-1", "4000500", "Коробка"),
            Material("dup-2", "4000500", "Коробка стара"),
        ])
        recipe = Recipe(
            recipe_id="r1", name="t", output=CanonicalRef("gp"),
            ingredients=[ResolvedIngredient(
                material=CanonicalRef("dup-1"), quantity=2,
                is_duplicate_sku=True, fallback=FallbackInfo("4000500", "Коробка"),
            )],
        )
        result = CapacityCalculator(catalog).analyze(recipe, {"dup-2": 20}, "2024-03")
        assert result.lines[0].available == 20
        assert result.max_batches == 10

        # without a catalog there is no secondary lookup
        assert CapacityCalculator().analyze(recipe, {"dup-2": 20}, "2024-03").max_batches == 0

    def test_placeholder_uses_fallback_sku(self):
        """C3.3: placeholders find stock through their SKU."""
        catalog = MaterialCatalog.from_materials([Material("m-real", "7777", "Нитка", "pcs")])
        recipe = Recipe(
            recipe_id="r1", name="t", output=PlaceholderRef("282099", "New tea"),
            ingredients=[ResolvedIngredient(material=PlaceholderRef("7777", "Нитка"), quantity=1)],
        )
        result = CapacityCalculator(catalog).analyze(recipe, {"m-real": 12}, "2024-03")
        line = result.lines[0]
        assert line.material_id is None
        assert line.available == 12
        assert line.name == "Нитка"

    def test_display_from_catalog(self, catalog, earl_grey_recipe, sample_stock):
        """C3.4: canonical lines show catalog name and unit."""
        result = CapacityCalculator(catalog).analyze(earl_grey_recipe, sample_stock, "2024-03")
        label = next(line for line in result.lines if line.material_id == "m-label")
        assert label.name == "Ярлик Classic"
        assert label.unit == "pcs"


class TestC4_Plan:
    """C4: forward planning."""

    def test_shortage(self):
        """C4.1: 50 units at 5/batch -> 10 batches; 3/batch vs 25 -> short 5."""
        plan = CapacityCalculator().plan(_recipe(("A", 3), output_quantity=5), {"A": 25}, 50, "2024-03")
        assert plan.batches_needed == 10
        line = plan.lines[0]
        assert line.required_total == 30
        assert line.projected_balance == -5
        assert line.shortage
        assert plan.has_shortage
        assert plan.shortages == [line]

    def test_partial_batches_not_rounded(self):
        """C4.2: batches needed is a real number."""
        plan = CapacityCalculator().plan(_recipe(("A", 2), output_quantity=4), {"A": 100}, 10, "2024-03")
        assert plan.batches_needed == 2.5
        assert plan.lines[0].required_total == 5
        assert not plan.has_shortage

    def test_zero_requirements_omitted(self):
        """C4.3: ingredients needing nothing are left out; others all evaluated."""
        plan = CapacityCalculator().plan(_recipe(("A", 0), ("B", 1), ("C", 1)), {"B": 0, "C": 100}, 10, "2024-03")
        assert [line.material_id for line in plan.lines] == ["B", "C"]
        assert [line.shortage for line in plan.lines] == [True, False]

    def test_no_result_states(self):
        """C4.4: no recipe, target <= 0 or no ingredients -> None."""
        calc = CapacityCalculator()
        assert calc.plan(None, {}, 10, "2024-03") is None
        assert calc.plan(_recipe(("A", 1)), {}, 0, "2024-03") is None
        assert calc.plan(_recipe(("A", 1)), {}, -5, "2024-03") is None
        assert calc.plan(_recipe(), {}, 10, "2024-03") is None

    def test_plan_uses_monthly_norms(self):
        """C4.5: recent norm replaces the base quantity."""
        recipe = Recipe(
            recipe_id="r1", name="t", output=CanonicalRef("gp"),
            ingredients=[ResolvedIngredient(
                material=CanonicalRef("A"), quantity=1,
                monthly_norms=[MonthlyNorm("2024-02-01", 2)],
            )],
        )
        plan = CapacityCalculator().plan(recipe, {"A": 15}, 10, "2024-05")
        assert plan.lines[0].norm_source == NormSource.RECENT
        assert plan.lines[0].required_total == 20
        assert plan.lines[0].shortage_quantity == 5

    def test_plan_dataframe(self):
        """C4.6: export contains balance and shortage columns."""
        plan = CapacityCalculator().plan(_recipe(("A", 3), output_quantity=5), {"A": 25}, 50, "2024-03")
        df = plan.to_dataframe()
        assert df.loc[0, "projected_balance"] == -5
        assert bool(df.loc[0, "shortage"]) is True

    def test_store_entry_points(self):
        """C4.7: lookups by id return None for unknown recipes."""
        store = _DictStore(_recipe(("A", 10), ("B", 5)))
        assert analyze_recipe("missing", store, {}, "2024-03") is None
        assert plan_recipe("missing", store, {}, 10, "2024-03") is None
        assert analyze_recipe("r1", store, {"A": 100, "B": 30}, "2024-03").max_batches == 6
        assert plan_recipe("r1", store, {"A": 100, "B": 30}, 10, "2024-03").has_shortage
