"""
Base Scraper Class

Provides common functionality for all fitness studio providers.
"""

import logging
from abc import ABC, abstractmethod
from datetime import time, timedelta
from typing import Iterable, Iterator, List, Optional

from ..database.models import ClassRecord, ScrapeOptions, ScrapeResult
from ..validation import parse_instant
from .browser import browser_session
from .parsing import normalize_url

logger = logging.getLogger(__name__)


class BaseScraper(ABC):
    """Base class for all fitness studio providers."""

    def __init__(self, source_name: str, base_url: str = "", headless: bool = True, enabled: bool = True):
        """
        Initialize the scraper.

        Args:
            source_name: Name of the fitness studio/source
            base_url: Root URL relative links are resolved against
            headless: Whether to run browser in headless mode
            enabled: Whether the provider takes part in "all" runs
        """
        self.source_name = source_name
        self.base_url = base_url
        self.headless = headless
        self.enabled = enabled

    @property
    def name(self) -> str:
        return self.source_name

    def browser(self):
        """Scoped Chrome session; quit on every exit path."""
        return browser_session(self.headless)

    @abstractmethod
    def scrape(self, options: ScrapeOptions) -> ScrapeResult:
        """
        Scrape classes from the fitness studio website.

        Returns:
            A ScrapeResult whose records may be produced lazily
        """

    def create_result(
        self,
        records: Iterable[ClassRecord] = (),
        success: bool = True,
        errors: Optional[List[str]] = None,
    ) -> ScrapeResult:
        return ScrapeResult(provider=self.name, records=records, errors=errors or [], success=success)

    def normalize_url(self, url: str) -> str:
        return normalize_url(url, self.base_url)

    @staticmethod
    def is_within_date_range(record: ClassRecord, options: ScrapeOptions) -> bool:
        start = parse_instant(record.datetime)
        if start is None:
            # Leave unparseable times to the validator
            return True
        if options.start_date and start < parse_instant(options.start_date):
            return False
        if options.end_date:
            end = parse_instant(options.end_date)
            if end.time() == time.min:
                # a bare date bound covers that whole day
                if start >= end + timedelta(days=1):
                    return False
            elif start > end:
                return False
        return True

    def filter_records(self, records: Iterable[ClassRecord], options: ScrapeOptions) -> Iterator[ClassRecord]:
        """Apply the date range and result cap from the scrape options."""
        emitted = 0
        iterator = iter(records)
        try:
            for record in iterator:
                if options.max_results is not None and emitted >= options.max_results:
                    break
                if not self.is_within_date_range(record, options):
                    continue
                emitted += 1
                yield record
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()

    def log_progress(self, message: str):
        logger.info(f"[{self.name}] {message}")

    def log_error(self, message: str):
        logger.error(f"[{self.name}] {message}")
