"""
Tests for material resolution (R1-R4)
"""
import pytest

from techcards.models_common import CanonicalRef, Material, MaterialCatalog, PlaceholderRef
from techcards.ops_ingestion.material_resolver import (
    MaterialResolver,
    MatchTier,
    OutcomeKind,
    derive_category,
    derive_unit,
    names_match_fuzzy,
    resolve,
)
from techcards.ops_ingestion.schemas import RawIngredientDescriptor


def _desc(sku="", name="", **kwargs):
    return RawIngredientDescriptor(sku=sku, name=name, **kwargs)


class TestR1_Tiers:
    """R1: ordered matching tiers."""

    def test_exact_sku_beats_name(self, catalog):
        """R1.1: SKU of one material wins over the exact name of another."""
        outcome, _ = resolve(_desc("2010331", "Чай зелений"), catalog)
        assert outcome.kind == OutcomeKind.MATCHES
        assert outcome.match_tier == MatchTier.SKU_EXACT
        assert [m.material_id for m in outcome.materials] == ["m-black"]

    def test_sku_case_insensitive(self):
        """R1.2: SKU match ignores case and surrounding spaces."""
        cat = MaterialCatalog.from_materials([Material("x", "ABC-1", "Something")])
        outcome, _ = resolve(_desc(" abc-1 ", "other"), cat)
        assert outcome.match_tier == MatchTier.SKU_EXACT

    def test_exact_name(self, catalog):
        """R1.3: unknown SKU, exact name (case-insensitive)."""
        outcome, _ = resolve(_desc("9999999", "ЧАЙ  зелений"), catalog)
        assert outcome.match_tier == MatchTier.NAME_EXACT
        assert outcome.materials[0].material_id == "m-green"

    def test_name_containment(self, catalog):
        """R1.4: descriptor name contained in a catalog name."""
        outcome, _ = resolve(_desc(name="Ароматизатор"), catalog)
        assert outcome.match_tier == MatchTier.NAME_FUZZY
        assert [m.material_id for m in outcome.materials] == ["m-flavor"]

    def test_keyword_overlap(self, catalog):
        """R1.5: long names match on half of their long words."""
        outcome, _ = resolve(_desc(name="Цейлонський чорний чай листовий"), catalog)
        assert outcome.match_tier == MatchTier.NAME_FUZZY
        assert [m.material_id for m in outcome.materials] == ["m-black"]

    def test_short_name_no_keyword_overlap(self):
        """R1.6: names of 10 characters or less only match by containment."""
        assert not names_match_fuzzy("чорний чай", "чай чорний байховий")
        assert names_match_fuzzy("чорний чай листовий", "чай чорний байховий")

    def test_sku_containment(self, catalog):
        """R1.7: partial SKU, no name."""
        outcome, _ = resolve(_desc(sku="20103"), catalog)
        assert outcome.match_tier == MatchTier.SKU_FUZZY
        assert [m.material_id for m in outcome.materials] == ["m-black"]


class TestR2_FanOut:
    """R2: several hits produce one ingredient per material."""

    def test_duplicate_sku_fans_out(self, catalog):
        """R2.1: shared SKU gives two ingredients, both flagged."""
        outcome, _ = resolve(_desc("4000500", "Коробка", quantity=1), catalog)
        assert outcome.is_duplicate
        ingredients = outcome.to_ingredients()
        assert [i.material_id for i in ingredients] == ["m-box-a", "m-box-b"]
        assert all(i.is_duplicate_sku for i in ingredients)
        assert all(i.quantity == 1 for i in ingredients)

    def test_single_match_not_duplicate(self, catalog):
        """R2.2: one hit is not a duplicate."""
        outcome, _ = resolve(_desc("3000100", "Ярлик"), catalog)
        (ingredient,) = outcome.to_ingredients()
        assert not ingredient.is_duplicate_sku
        assert not ingredient.is_auto_created
        assert ingredient.material == CanonicalRef("m-label")
        assert ingredient.fallback.sku == "3000100"


class TestR3_Provisioning:
    """R3: unknown materials are created through the provider."""

    def test_provisioned_material(self, catalog, provider):
        """R3.1: new material keyed by trimmed SKU, added to the returned catalog."""
        desc = _desc(" 7777 ", "Нитка для пакетиків", category="Пакувальні матеріали", unit="шт", quantity="2.124")
        outcome, new_catalog = resolve(desc, catalog, provider)

        assert outcome.kind == OutcomeKind.PROVISIONED
        created = provider.created[0]
        assert created.sku == "7777"
        assert created.category == "packaging_cardboard"
        assert created.unit == "pcs"
        assert created.material_id in new_catalog
        assert created.material_id not in catalog

        (ingredient,) = outcome.to_ingredients()
        assert ingredient.is_auto_created
        assert ingredient.quantity == 2124

    def test_provisioning_is_idempotent_within_run(self, catalog, provider):
        """R3.2: the same unknown row twice provisions once."""
        resolver = MaterialResolver(provider)
        desc = _desc("7777", "Нитка")
        first, catalog = resolver.resolve(desc, catalog)
        second, catalog = resolver.resolve(desc, catalog)

        assert first.kind == OutcomeKind.PROVISIONED
        assert second.kind == OutcomeKind.MATCHES
        assert second.match_tier == MatchTier.SKU_EXACT
        assert provider.calls == 1

    def test_write_rejected(self, catalog, failing_provider):
        """R3.3: a rejected write leaves a placeholder with fallback metadata."""
        outcome, new_catalog = resolve(_desc("7777", "Нитка"), catalog, failing_provider)
        assert outcome.kind == OutcomeKind.UNRESOLVED
        assert new_catalog is catalog

        (ingredient,) = outcome.to_ingredients()
        assert ingredient.material == PlaceholderRef("7777", "Нитка")
        assert ingredient.fallback.sku == "7777"
        assert ingredient.fallback.name == "Нитка"
        assert not ingredient.is_auto_created
        assert not ingredient.is_resolved

    def test_provider_returns_nothing(self, catalog, silent_provider):
        """R3.4: None from the provider counts as a failure."""
        outcome, _ = resolve(_desc("7777", "Нитка"), catalog, silent_provider)
        assert outcome.kind == OutcomeKind.UNRESOLVED

    def test_no_sku_not_provisioned(self, catalog, provider):
        """R3.5: without a SKU nothing is created."""
        outcome, _ = resolve(_desc(name="Зовсім невідомий матеріал"), catalog, provider)
        assert outcome.kind == OutcomeKind.UNRESOLVED
        assert provider.calls == 0

    def test_no_provider(self, catalog):
        """R3.6: without a provider unmatched rows are unresolved."""
        outcome, _ = resolve(_desc("7777", "Нитка"), catalog)
        assert outcome.kind == OutcomeKind.UNRESOLVED


class TestR4_Vocabulary:
    """R4: category and unit of provisioned materials."""

    @pytest.mark.parametrize("group,expected", [
        ("Сировина", "tea_bulk"),
        ("Купаж", "tea_bulk"),
        ("Картонна упаковка", "packaging_cardboard"),
        ("Етикетки", "label"),
        ("Стикери", "label"),
        ("Ящики", "packaging_crate"),
        ("Інше", "other"),
        ("", "other"),
    ])
    def test_derive_category(self, group, expected):
        """R4.1: group text maps to a category."""
        assert derive_category(group) == expected

    def test_derive_unit(self):
        """R4.2: units collapse to pcs, kg or g."""
        assert derive_unit(_desc("1", "x", unit="шт")) == "pcs"
        assert derive_unit(_desc("1", "x", unit="г")) == "g"
        assert derive_unit(_desc("1", "x", unit="кг")) == "kg"
        assert derive_unit(_desc("1", "x", unit="л")) == "kg"
        assert derive_unit(_desc("1", "x", category="Ярлики")) == "pcs"

    def test_descriptor_needs_identity(self):
        """R4.3: a row with neither SKU nor name is rejected."""
        with pytest.raises(ValueError):
            RawIngredientDescriptor(sku="  ", name="")
