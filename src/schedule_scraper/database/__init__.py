"""
Database Package

Record models, connection/schema utilities and the local class store.
"""

from .models import (
    ClassRecord,
    Location,
    ProviderStats,
    ScrapeOptions,
    ScrapeResult,
    ScrapeRun,
    StoredClass,
)
from .store import ClassStore
from .utils import check_connection, ensure_schema

__all__ = [
    "ClassRecord",
    "ClassStore",
    "Location",
    "ProviderStats",
    "ScrapeOptions",
    "ScrapeResult",
    "ScrapeRun",
    "StoredClass",
    "check_connection",
    "ensure_schema",
]
