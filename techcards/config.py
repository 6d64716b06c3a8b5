"""
Tech Cards - Planner Settings
=============================

Policy constants for import and capacity analysis.

Usage:
    from techcards.config import PlannerSettings

    if max_batches < PlannerSettings.get_config().warning_batches:
        ...

Environment overrides:
    TECHCARDS_WARNING_BATCHES=10
    TECHCARDS_FUZZY_MIN_NAME_LENGTH=10
    TECHCARDS_DEFAULT_UNIT=kg
    TECHCARDS_DATABASE_URL=sqlite:///techcards.db
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIG
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class PlannerConfig:
    """
    Import and analysis settings.

    The fuzzy thresholds were tuned against real tech-card sheets and are kept
    as-is for matching compatibility.
    """
    # Capacity status
    warning_batches: int = 10

    # Tier-3 keyword overlap
    fuzzy_min_name_length: int = 10
    fuzzy_min_word_length: int = 3
    fuzzy_word_overlap: float = 0.5

    # Sheet import
    default_unit: str = "kg"
    header_scan_rows: int = 100

    # Recipe store
    database_url: str = "sqlite://"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PlannerSettings:
    """
    Singleton holding the active PlannerConfig.

    Usage:
        config = PlannerSettings.get_config()
        PlannerSettings.reset()  # reload from env
    """

    _instance: Optional[PlannerConfig] = None

    @classmethod
    def _load_from_env(cls) -> PlannerConfig:
        """Load settings from TECHCARDS_* environment variables."""
        config = PlannerConfig()

        typed_mapping = {
            "TECHCARDS_WARNING_BATCHES": ("warning_batches", int),
            "TECHCARDS_FUZZY_MIN_NAME_LENGTH": ("fuzzy_min_name_length", int),
            "TECHCARDS_FUZZY_MIN_WORD_LENGTH": ("fuzzy_min_word_length", int),
            "TECHCARDS_FUZZY_WORD_OVERLAP": ("fuzzy_word_overlap", float),
            "TECHCARDS_HEADER_SCAN_ROWS": ("header_scan_rows", int),
        }

        for env_var, (attr_name, cast) in typed_mapping.items():
            value = os.environ.get(env_var)
            if value:
                try:
                    setattr(config, attr_name, cast(value))
                    logger.info(f"Setting {attr_name} = {value}")
                except ValueError:
                    logger.warning(f"Invalid value for {env_var}: {value}")

        str_mapping = {
            "TECHCARDS_DEFAULT_UNIT": "default_unit",
            "TECHCARDS_DATABASE_URL": "database_url",
        }

        for env_var, attr_name in str_mapping.items():
            value = os.environ.get(env_var)
            if value:
                setattr(config, attr_name, value.strip())

        return config

    @classmethod
    def get_config(cls) -> PlannerConfig:
        """Return the active config, loading it on first use."""
        if cls._instance is None:
            cls._instance = cls._load_from_env()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached config so the next call reloads it."""
        cls._instance = None

    @classmethod
    def override(cls, **values: Any) -> PlannerConfig:
        """
        Override settings at runtime (tests, one-off imports).

        Unknown keys are ignored with a warning.
        """
        config = cls.get_config()
        for key, value in values.items():
            if not hasattr(config, key):
                logger.warning(f"Unknown planner setting: {key}")
                continue
            setattr(config, key, value)
        return config
