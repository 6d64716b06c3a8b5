"""
Shared fixtures for the tech-card tests.
"""
from typing import List, Optional

import pytest

from techcards.config import PlannerSettings
from techcards.models_common import (
    CanonicalRef,
    FallbackInfo,
    Material,
    MaterialCatalog,
    MonthlyNorm,
    Recipe,
    ResolvedIngredient,
)
from techcards.ops_ingestion.material_resolver import CatalogProvider, CatalogWriteError
from techcards.ops_ingestion.models import get_engine, get_session_factory


class FakeCatalogProvider(CatalogProvider):
    """In-memory provider that records every create_material call."""

    def __init__(self, fail_with: Optional[Exception] = None, return_none: bool = False):
        self.created: List[Material] = []
        self.calls = 0
        self.fail_with = fail_with
        self.return_none = return_none

    def find_by_sku(self, sku):
        return [m for m in self.created if m.sku.lower() == sku.strip().lower()]

    def find_by_name(self, name):
        return [m for m in self.created if m.name.lower() == name.strip().lower()]

    def create_material(self, sku, name, category, unit):
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        if self.return_none:
            return None
        material = Material(
            material_id=f"new-{len(self.created) + 1}",
            sku=sku,
            name=name,
            unit=unit,
            category=category,
        )
        self.created.append(material)
        return material


@pytest.fixture(autouse=True)
def reset_settings():
    """Each test starts from default settings."""
    PlannerSettings.reset()
    yield
    PlannerSettings.reset()


@pytest.fixture
def sample_materials():
    """Catalog materials; 4000500 is deliberately shared by two boxes."""
    return [
        Material("m-black", "2010331", "Чай чорний цейлонський", "kg", "tea_bulk"),
        Material("m-green", "2010400", "Чай зелений", "kg", "tea_bulk"),
        Material("m-label", "3000100", "Ярлик Classic", "pcs", "label"),
        Material("m-box-a", "4000500", "Коробка 25 пак", "pcs", "packaging_box"),
        Material("m-box-b", "4000500", "Коробка 25 пак (стара)", "pcs", "packaging_box"),
        Material("m-flavor", "5000001", "Ароматизатор бергамот", "kg", "flavor"),
        Material("gp-earl", "282085", "Чай Classic Earl Grey 25x2г", "pcs", "other"),
    ]


@pytest.fixture
def catalog(sample_materials):
    return MaterialCatalog.from_materials(sample_materials)


@pytest.fixture
def provider():
    return FakeCatalogProvider()


@pytest.fixture
def failing_provider():
    return FakeCatalogProvider(fail_with=CatalogWriteError("duplicate key", sku="7777"))


@pytest.fixture
def silent_provider():
    return FakeCatalogProvider(return_none=True)


@pytest.fixture
def earl_grey_recipe():
    """Earl Grey: black tea with a monthly history, flavor, labels."""
    return Recipe(
        recipe_id="rcp-earl",
        name="Чай Classic Earl Grey 25x2г",
        output=CanonicalRef("gp-earl"),
        output_quantity=1.0,
        ingredients=[
            ResolvedIngredient(
                material=CanonicalRef("m-black"),
                quantity=0.05,
                monthly_norms=[
                    MonthlyNorm("2024-01-01", 0.048),
                    MonthlyNorm("2024-03-01", 0.052),
                ],
                fallback=FallbackInfo("2010331", "Чай чорний"),
            ),
            ResolvedIngredient(material=CanonicalRef("m-flavor"), quantity=0.001),
            ResolvedIngredient(material=CanonicalRef("m-label"), quantity=25),
        ],
        description="SKU: 282085",
    )


@pytest.fixture
def sample_stock():
    """(material_id, warehouse_id, quantity) entries."""
    return [
        ("m-black", "main", 3.0),
        ("m-black", "production", 2.2),
        ("m-flavor", "main", 0.5),
        ("m-label", "main", 1000),
        ("m-label", "contractor", 250),
    ]


@pytest.fixture
def db_session():
    """Fresh in-memory SQLite database per test."""
    engine = get_engine("sqlite://")
    session = get_session_factory(engine)()
    yield session
    session.close()
    engine.dispose()
