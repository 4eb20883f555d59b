"""
Scrapers Package

Providers that turn fitness studio schedule pages into class records.
"""

from .base import BaseScraper
from .registry import build_providers, load_sites
from .selector import SelectorScraper, SiteConfig, build_record

__all__ = [
    "BaseScraper",
    "SelectorScraper",
    "SiteConfig",
    "build_providers",
    "build_record",
    "load_sites",
]
