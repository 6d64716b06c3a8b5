"""
Tech-card ingestion: numeric cells, sheet parsing and export, material resolution,
import service, quality checks and the SQL store.
"""

from .numeric import NumericNormalizer, is_integer_class, normalize, parse_unit
from .schemas import ImportDiagnostics, ImportResult, RawIngredientDescriptor, TechCardRow
from .material_resolver import (
    CatalogProvider,
    CatalogWriteError,
    MaterialResolver,
    MatchTier,
    OutcomeKind,
    ResolutionOutcome,
    resolve,
)
from .excel_parser import parse_tech_cards, parse_tech_cards_excel
from .excel_export import build_tech_cards_frame, export_tech_cards_excel
from .services import TechCardImportService

__all__ = [
    "NumericNormalizer",
    "is_integer_class",
    "normalize",
    "parse_unit",
    "ImportDiagnostics",
    "ImportResult",
    "RawIngredientDescriptor",
    "TechCardRow",
    "CatalogProvider",
    "CatalogWriteError",
    "MaterialResolver",
    "MatchTier",
    "OutcomeKind",
    "ResolutionOutcome",
    "resolve",
    "parse_tech_cards",
    "parse_tech_cards_excel",
    "build_tech_cards_frame",
    "export_tech_cards_excel",
    "TechCardImportService",
]
