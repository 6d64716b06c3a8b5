"""
════════════════════════════════════════════════════════════════════════════════
OPS INGESTION SERVICES - Tech-card import
════════════════════════════════════════════════════════════════════════════════

Features:
- Tech-card import from parsed sheets, Excel files or raw dict rows
- Row validation via Pydantic schemas (invalid rows are reported and skipped)
- Material resolution against a working catalog, with provisioning
- Aggregate diagnostics (found / duplicates / created / missing)
- Optional persistence through a recipe store

One import is a single in-order pass. Concurrent imports against the same
catalog need external locking.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from techcards.models_common import (
    CanonicalRef,
    MaterialCatalog,
    MaterialRef,
    PlaceholderRef,
    Recipe,
    ResolvedIngredient,
)
from techcards.ops_ingestion.data_quality import analyze_recipes_quality
from techcards.ops_ingestion.excel_parser import parse_tech_cards_excel
from techcards.ops_ingestion.material_resolver import (
    CatalogProvider,
    MaterialResolver,
    MatchTier,
    OutcomeKind,
    find_matches,
)
from techcards.ops_ingestion.schemas import (
    ImportDiagnostics,
    ImportResult,
    RawIngredientDescriptor,
    TechCardRow,
)

logger = logging.getLogger(__name__)

MAX_MISSING_SAMPLES = 10


# ═══════════════════════════════════════════════════════════════════════════════
# SERVICE CLASS
# ═══════════════════════════════════════════════════════════════════════════════

class TechCardImportService:
    """
    Tech-card ingestion.

    - Validates rows (Pydantic)
    - Resolves every ingredient row (tiers 1-4, provisioning via provider)
    - Builds one Recipe per finished good
    - Saves recipes when a store is given
    """

    def __init__(self, provider: Optional[CatalogProvider] = None, store=None):
        self.provider = provider
        self.store = store

    def import_tech_cards(
        self,
        cards: Iterable[Union[TechCardRow, Dict[str, Any]]],
        catalog: MaterialCatalog,
        provider: Optional[CatalogProvider] = None,
        source_file: str = "unknown",
    ) -> ImportResult:
        """
        Import parsed tech cards.

        Returns:
            ImportResult with recipes, the updated catalog and diagnostics
        """
        resolver = MaterialResolver(provider or self.provider)
        diagnostics = ImportDiagnostics()
        recipes: List[Recipe] = []
        warnings: List[str] = []
        errors: List[str] = []
        missing_seen = set()
        total = 0

        for position, raw_card in enumerate(cards):
            total += 1
            card, row_errors = self._validate_card(raw_card, position)
            errors.extend(row_errors)
            if card is None:
                continue

            ingredients: List[ResolvedIngredient] = []
            for descriptor in card.ingredients:
                outcome, catalog = resolver.resolve(descriptor, catalog)
                ingredients.extend(outcome.to_ingredients())

                if outcome.kind == OutcomeKind.MATCHES:
                    diagnostics.found_count += 1
                    if outcome.is_duplicate:
                        diagnostics.duplicate_count += 1
                elif outcome.kind == OutcomeKind.PROVISIONED:
                    diagnostics.created_count += 1
                else:
                    diagnostics.missing_count += 1
                    sample = " - ".join(p for p in (descriptor.sku, descriptor.name) if p)
                    if sample not in missing_seen:
                        missing_seen.add(sample)
                        if len(diagnostics.missing_samples) < MAX_MISSING_SAMPLES:
                            diagnostics.missing_samples.append(sample)

            recipe = Recipe(
                recipe_id=str(uuid.uuid4()),
                name=card.gp_name or card.gp_sku,
                output=self._resolve_output(card, catalog),
                output_quantity=1.0,
                ingredients=ingredients,
                description=f"SKU: {card.gp_sku}",
            )
            if not ingredients:
                diagnostics.empty_recipes.append(recipe.name)
            recipes.append(recipe)

        if self.store is not None:
            for recipe in recipes:
                self.store.save_recipe(recipe)

        if diagnostics.missing_count:
            warnings.append(
                f"{diagnostics.missing_count} materials not found "
                f"(unique: {len(missing_seen)}); e.g. {', '.join(diagnostics.missing_samples[:5])}"
            )
        if recipes:
            quality = analyze_recipes_quality(recipes)
            warnings.extend(quality["warnings"])
            errors.extend(quality["errors"])

        logger.info(
            f"Imported {len(recipes)} tech cards: found={diagnostics.found_count}, "
            f"duplicates={diagnostics.duplicate_count}, created={diagnostics.created_count}, "
            f"missing={diagnostics.missing_count}"
        )

        return ImportResult(
            success=len(errors) == 0,
            imported_count=len(recipes),
            failed_count=total - len(recipes),
            recipes=recipes,
            catalog=catalog,
            diagnostics=diagnostics,
            warnings=warnings,
            errors=errors,
            record_ids=[r.recipe_id for r in recipes],
            source_file=source_file,
        )

    def import_tech_cards_from_excel(
        self,
        file_path: Union[str, Path],
        catalog: MaterialCatalog,
        sheet_name: Any = 0,
    ) -> ImportResult:
        """Parse an .xlsx sheet and import its tech cards."""
        cards, parse_errors = parse_tech_cards_excel(file_path, sheet_name=sheet_name)
        source = Path(file_path).name

        if parse_errors and not cards:
            return ImportResult(
                success=False,
                errors=parse_errors,
                catalog=catalog,
                source_file=source,
            )

        result = self.import_tech_cards(cards, catalog, source_file=source)
        result.errors = parse_errors + result.errors
        result.success = len(result.errors) == 0
        return result

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    @staticmethod
    def _validate_card(
        raw_card: Union[TechCardRow, Dict[str, Any]],
        position: int,
    ) -> Tuple[Optional[TechCardRow], List[str]]:
        """Validate a card; invalid ingredient rows are dropped and reported."""
        if isinstance(raw_card, TechCardRow):
            return raw_card, []

        errors: List[str] = []
        label = raw_card.get("gp_sku") or raw_card.get("gp_name") or f"#{position + 1}"
        descriptors: List[RawIngredientDescriptor] = []
        for idx, row in enumerate(raw_card.get("ingredients") or []):
            try:
                descriptors.append(
                    row if isinstance(row, RawIngredientDescriptor) else RawIngredientDescriptor(**row)
                )
            except ValidationError as e:
                errors.append(f"Tech card {label}, row {idx + 1}: invalid row: {e.errors()[0]['msg']}")
            except TypeError as e:
                errors.append(f"Tech card {label}, row {idx + 1}: invalid row: {e}")

        try:
            card = TechCardRow(
                gp_sku=raw_card.get("gp_sku") or "",
                gp_name=raw_card.get("gp_name") or "",
                ingredients=descriptors,
            )
        except ValidationError as e:
            errors.append(f"Tech card {label}: {e.errors()[0]['msg']}")
            return None, errors

        if not card.key:
            errors.append(f"Tech card {label}: no finished-good SKU or name")
            return None, errors
        return card, errors

    @staticmethod
    def _resolve_output(card: TechCardRow, catalog: MaterialCatalog) -> MaterialRef:
        """Finished good: tiers 1-3, never provisioned."""
        lookup = RawIngredientDescriptor(sku=card.gp_sku, name=card.gp_name)
        hits, tier = find_matches(lookup, catalog, max_tier=MatchTier.NAME_FUZZY)
        if hits:
            logger.debug(f"Output {card.key} -> {hits[0].material_id} (tier {tier.value})")
            return CanonicalRef(material_id=hits[0].material_id)
        return PlaceholderRef(sku=card.gp_sku, name=card.gp_name)


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_service_instance: Optional[TechCardImportService] = None


def get_import_service() -> TechCardImportService:
    """Get singleton service instance (no provider, no store)."""
    global _service_instance
    if _service_instance is None:
        _service_instance = TechCardImportService()
    return _service_instance
