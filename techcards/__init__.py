"""
Tech cards production-planning core.
"""
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parent

__version__ = "0.1.0"

__all__ = ["PACKAGE_ROOT", "__version__"]
