"""
════════════════════════════════════════════════════════════════════════════════
OPS INGESTION MODELS - Materials, stock and recipe tables
════════════════════════════════════════════════════════════════════════════════

Tables:
- materials: canonical catalog
- stock_levels: on-hand quantity per material and warehouse
- recipes: tech-card header (output may be a placeholder)
- recipe_ingredients: resolved ingredient rows

Placeholders are stored as NULL ids plus the source SKU/name; the
placeholder/canonical variant, fallback metadata, flags and monthly norms
round-trip unchanged.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    create_engine,
    func,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

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
    normalize_key,
)
from techcards.ops_ingestion.material_resolver import CatalogProvider, CatalogWriteError
from techcards.smart_inventory.stock_state import StockProvider, StockSnapshot

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════════════════════════

def get_engine(database_url: Optional[str] = None) -> Engine:
    """Engine for `database_url` (defaults to the configured URL)."""
    url = database_url or PlannerSettings.get_config().database_url
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url)


def init_tables(engine: Engine) -> None:
    """Create the tech-card tables if missing."""
    Base.metadata.create_all(bind=engine, checkfirst=True)


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    engine = engine or get_engine()
    init_tables(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ═══════════════════════════════════════════════════════════════════════════════
# MODELS
# ═══════════════════════════════════════════════════════════════════════════════

class MaterialModel(Base):
    """Canonical material."""
    __tablename__ = "materials"

    id = Column(String(64), primary_key=True)
    sku = Column(String(100), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False, default="other")
    unit = Column(String(20), nullable=False, default="kg")
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    def to_domain(self) -> Material:
        return Material(
            material_id=self.id,
            sku=self.sku or "",
            name=self.name,
            unit=self.unit,
            category=self.category,
        )


class StockLevelModel(Base):
    """On-hand quantity of one material in one warehouse."""
    __tablename__ = "stock_levels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    material_id = Column(String(64), ForeignKey("materials.id"), nullable=False, index=True)
    warehouse_id = Column(String(64), nullable=False, default="main")
    quantity = Column(Float, nullable=False, default=0.0)

    __table_args__ = (
        Index("ix_stock_levels_material_warehouse", "material_id", "warehouse_id"),
    )


class RecipeModel(Base):
    """
    Tech-card header.

    - output_item_id: NULL when the finished good is a placeholder
    - output_temp_sku / output_temp_name: placeholder source data
    """
    __tablename__ = "recipes"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    output_item_id = Column(String(64), nullable=True)
    output_temp_sku = Column(String(100), nullable=True)
    output_temp_name = Column(String(255), nullable=True)
    output_quantity = Column(Float, nullable=False, default=1.0)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    ingredients = relationship(
        "RecipeIngredientModel",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredientModel.position",
    )


class RecipeIngredientModel(Base):
    """
    Resolved ingredient row.

    - item_id: NULL for a placeholder
    - temp_material_sku / temp_material_name: fallback metadata (NULL = none)
    - monthly_norms_json: [{"date": "YYYY-MM-01", "quantity": q}, ...] in stored order
    """
    __tablename__ = "recipe_ingredients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipe_id = Column(String(64), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    item_id = Column(String(64), nullable=True, index=True)
    quantity = Column(Float, nullable=False, default=0.0)
    temp_material_sku = Column(String(100), nullable=True)
    temp_material_name = Column(String(255), nullable=True)
    is_duplicate_sku = Column(Boolean, nullable=False, default=False)
    is_auto_created = Column(Boolean, nullable=False, default=False)
    tolerance = Column(Float, nullable=True)
    monthly_norms_json = Column(Text, nullable=True)

    recipe = relationship("RecipeModel", back_populates="ingredients")

    def get_monthly_norms(self) -> List[MonthlyNorm]:
        """Parse monthly_norms_json to MonthlyNorm list."""
        if not self.monthly_norms_json:
            return []
        try:
            data = json.loads(self.monthly_norms_json)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Corrupt monthly norms on ingredient {self.id}")
            return []
        return [MonthlyNorm(month=item["date"], quantity=float(item["quantity"])) for item in data]

    def set_monthly_norms(self, norms) -> None:
        """Set monthly_norms_json from MonthlyNorm list."""
        self.monthly_norms_json = json.dumps([n.to_dict() for n in norms]) if norms else None


# ═══════════════════════════════════════════════════════════════════════════════
# RECIPE STORE
# ═══════════════════════════════════════════════════════════════════════════════

def _ingredient_to_row(ingredient: ResolvedIngredient, position: int) -> RecipeIngredientModel:
    row = RecipeIngredientModel(
        position=position,
        quantity=ingredient.quantity,
        is_duplicate_sku=ingredient.is_duplicate_sku,
        is_auto_created=ingredient.is_auto_created,
        tolerance=ingredient.tolerance,
    )
    if isinstance(ingredient.material, CanonicalRef):
        row.item_id = ingredient.material.material_id
    fb = ingredient.fallback
    if fb is not None:
        row.temp_material_sku = fb.sku
        row.temp_material_name = fb.name
    row.set_monthly_norms(ingredient.monthly_norms)
    return row


def _row_to_ingredient(row: RecipeIngredientModel) -> ResolvedIngredient:
    has_fallback = row.temp_material_sku is not None or row.temp_material_name is not None
    fallback = (
        FallbackInfo(sku=row.temp_material_sku or "", name=row.temp_material_name or "")
        if has_fallback else None
    )
    if row.item_id:
        material = CanonicalRef(material_id=row.item_id)
    else:
        material = PlaceholderRef(sku=row.temp_material_sku or "", name=row.temp_material_name or "")
    return ResolvedIngredient(
        material=material,
        quantity=row.quantity,
        monthly_norms=row.get_monthly_norms(),
        is_duplicate_sku=bool(row.is_duplicate_sku),
        is_auto_created=bool(row.is_auto_created),
        fallback=fallback,
        tolerance=row.tolerance,
    )


def _model_to_recipe(model: RecipeModel) -> Recipe:
    if model.output_item_id:
        output = CanonicalRef(material_id=model.output_item_id)
    else:
        output = PlaceholderRef(sku=model.output_temp_sku or "", name=model.output_temp_name or "")
    return Recipe(
        recipe_id=model.id,
        name=model.name,
        output=output,
        output_quantity=model.output_quantity,
        ingredients=[_row_to_ingredient(row) for row in model.ingredients],
        description=model.description,
    )


class SqlRecipeStore:
    """Recipe persistence on a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def save_recipe(self, recipe: Recipe) -> None:
        """Upsert the header and replace all ingredient rows."""
        model = self.db.get(RecipeModel, recipe.recipe_id)
        if model is None:
            model = RecipeModel(id=recipe.recipe_id)
            self.db.add(model)

        model.name = recipe.name
        model.description = recipe.description
        model.output_quantity = recipe.output_quantity
        if isinstance(recipe.output, CanonicalRef):
            model.output_item_id = recipe.output.material_id
            model.output_temp_sku = None
            model.output_temp_name = None
        else:
            model.output_item_id = None
            model.output_temp_sku = recipe.output.sku
            model.output_temp_name = recipe.output.name

        model.ingredients.clear()
        self.db.flush()
        model.ingredients.extend(
            _ingredient_to_row(ingredient, position)
            for position, ingredient in enumerate(recipe.ingredients)
        )
        self.db.commit()
        logger.debug(f"Saved recipe {recipe.recipe_id} ({len(recipe.ingredients)} ingredients)")

    def get_recipe(self, recipe_id: str) -> Optional[Recipe]:
        model = self.db.get(RecipeModel, recipe_id)
        if model is None:
            return None
        return _model_to_recipe(model)

    def list_recipes(self) -> List[Recipe]:
        models = self.db.query(RecipeModel).order_by(RecipeModel.name, RecipeModel.id).all()
        return [_model_to_recipe(m) for m in models]

    def delete_recipe(self, recipe_id: str) -> bool:
        model = self.db.get(RecipeModel, recipe_id)
        if model is None:
            return False
        self.db.delete(model)
        self.db.commit()
        return True


# ═══════════════════════════════════════════════════════════════════════════════
# CATALOG & STOCK PROVIDERS
# ═══════════════════════════════════════════════════════════════════════════════

class SqlCatalogProvider(CatalogProvider):
    """Material catalog backed by the materials table."""

    def __init__(self, db: Session):
        self.db = db

    def _ordered(self):
        return self.db.query(MaterialModel).order_by(MaterialModel.created_at, MaterialModel.id)

    def find_by_sku(self, sku: str) -> List[Material]:
        if not normalize_key(sku):
            return []
        return self.load_catalog().find_by_sku(sku)

    def find_by_name(self, name: str) -> List[Material]:
        # SQLite lower() is ASCII-only; match on the normalized index instead
        if not normalize_key(name):
            return []
        return self.load_catalog().find_by_name(name)

    def add_material(self, material: Material) -> Material:
        """Insert an existing catalog material as-is (seeding, sync)."""
        self.db.add(MaterialModel(
            id=material.material_id,
            sku=material.sku,
            name=material.name,
            category=material.category,
            unit=material.unit,
        ))
        self.db.commit()
        return material

    def create_material(self, sku: str, name: str, category: str, unit: str) -> Optional[Material]:
        sku = (sku or "").strip()
        if not sku:
            raise CatalogWriteError("SKU is required", sku=sku)
        if self.find_by_sku(sku):
            raise CatalogWriteError(f"SKU {sku} already exists", sku=sku)

        model = MaterialModel(
            id=str(uuid.uuid4()),
            sku=sku,
            name=name or f"Material {sku}",
            category=category,
            unit=unit,
        )
        self.db.add(model)
        self.db.commit()
        logger.info(f"Created material {model.id} for SKU {sku}")
        return model.to_domain()

    def load_catalog(self) -> MaterialCatalog:
        return MaterialCatalog.from_materials(r.to_domain() for r in self._ordered().all())


class SqlStockProvider(StockProvider):
    """Stock levels summed across warehouses."""

    def __init__(self, db: Session):
        self.db = db

    def add_stock(self, material_id: str, quantity: float, warehouse_id: str = "main") -> None:
        self.db.add(StockLevelModel(material_id=material_id, warehouse_id=warehouse_id, quantity=quantity))
        self.db.commit()

    def aggregate_by_material(self, material_id: str) -> float:
        if not material_id:
            return 0.0
        total = (
            self.db.query(func.coalesce(func.sum(StockLevelModel.quantity), 0.0))
            .filter(StockLevelModel.material_id == material_id)
            .scalar()
        )
        return float(total or 0.0)

    def snapshot(self) -> StockSnapshot:
        rows = self.db.query(
            StockLevelModel.material_id, StockLevelModel.warehouse_id, StockLevelModel.quantity
        ).all()
        return StockSnapshot.from_entries((r[0], r[1], r[2]) for r in rows)
