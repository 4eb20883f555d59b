"""
Run Tracker

Opens a scrape run and closes it exactly once, then folds the outcome into
the provider's running stats.
"""

import logging
from typing import Iterable, Optional

from ..database.models import RUN_COMPLETED, RUN_FAILED, RUN_RUNNING

logger = logging.getLogger(__name__)


class RunStateError(RuntimeError):
    """Raised when a run is started twice or closed more than once."""


class RunTracker:
    """State machine for one run: running -> completed | failed."""

    def __init__(self, store, provider: str):
        self.store = store
        self.provider = provider
        self.run_id: Optional[str] = None
        self.status: Optional[str] = None

    def start(self) -> str:
        if self.run_id is not None:
            raise RunStateError(f"Run {self.run_id} already started")
        self.run_id = self.store.create_run(self.provider)
        self.status = RUN_RUNNING
        logger.info(f"[{self.provider}] Started run {self.run_id}")
        return self.run_id

    def complete(self, classes_found: int, classes_uploaded: int, errors: Iterable[str] = ()):
        """Close the run as completed; zero classes found is still a success."""
        self._finish(True, classes_found, classes_uploaded, "; ".join(errors))

    def fail(self, classes_found: int, classes_uploaded: int, error: str):
        self._finish(False, classes_found, classes_uploaded, error)

    def _finish(self, success: bool, found: int, uploaded: int, errors: str):
        if self.status != RUN_RUNNING:
            raise RunStateError(f"Run {self.run_id} is {self.status or 'not started'}, cannot close it")

        self.store.complete_run(self.run_id, success, found, uploaded, errors or None)
        self.status = RUN_COMPLETED if success else RUN_FAILED
        self.store.update_provider_stats(self.provider, success, found)

        log = logger.info if success else logger.warning
        log(f"[{self.provider}] Run {self.run_id} {self.status}: {found} found, {uploaded} uploaded")
