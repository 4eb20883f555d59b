"""
Provider registry, loaded from the providers JSON file.

    {
      "providers": {
        "rite": {"enabled": true, "baseUrl": "...", "itemSelector": "...", ...}
      }
    }
"""

import json
import logging
import os
from typing import Dict, List

from .base import BaseScraper
from .selector import SelectorScraper, SiteConfig

logger = logging.getLogger(__name__)


def load_sites(path: str) -> List[SiteConfig]:
    """Read site configurations; a missing file yields no sites."""
    if not os.path.exists(path):
        logger.warning(f"{path} not found, no providers configured")
        return []

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return [SiteConfig.from_dict(name, entry) for name, entry in (data.get("providers") or {}).items()]


def build_providers(path: str, headless: bool = True) -> Dict[str, BaseScraper]:
    providers: Dict[str, BaseScraper] = {
        site.name: SelectorScraper(site, headless=headless) for site in load_sites(path)
    }
    logger.info(f"Initialized {len(providers)} providers")
    return providers
