"""
Backend Client

Pushes class records to the backend API in fixed-size batches. A failing
batch never aborts the upload; its error is collected and the next batch is
sent after a fixed delay.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from ..database.models import ClassRecord

logger = logging.getLogger(__name__)

CLASSES_PATH = "/api/v1/classes"
CHECK_PATH = "/api/v1/classes/check"
HEALTH_PATH = "/api/v1/health"
STATS_PATH = "/api/v1/stats"


class MalformedResponseError(ValueError):
    """The backend answered 2xx but the body is not the JSON we expect."""


@dataclass
class BatchResult:
    """Outcome of one POST of a batch."""
    index: int
    start: int
    size: int
    uploaded: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def failed(self) -> int:
        return 0 if self.ok else self.size


@dataclass
class UploadResult:
    success: bool = True
    uploaded: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    batches: List[BatchResult] = field(default_factory=list)

    def acknowledged(self, records: Sequence[Any]) -> List[Any]:
        """
        Records the backend accepted, attributed batch by batch.

        Only batches that succeeded count. When the server reports fewer
        records than it was sent, the first ``uploaded`` records of that batch
        are taken as accepted; the server gives no per-record answer.

        Args:
            records: The exact sequence passed to upload_classes

        Returns:
            The accepted subset, in input order
        """
        accepted = []
        for batch in self.batches:
            if batch.ok:
                accepted.extend(records[batch.start:batch.start + batch.uploaded])
        return accepted


class BackendClient:
    """Client for the backend classes API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        batch_size: int = 50,
        batch_delay: float = 1.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.session = session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "BackendClient":
        return cls(
            base_url=settings.backend_url,
            api_key=settings.backend_api_key,
            timeout=settings.upload_timeout,
            batch_size=settings.batch_size,
            batch_delay=settings.batch_delay,
        )

    def _headers(self, json_body: bool = True) -> Dict[str, str]:
        headers = {}
        if json_body:
            headers["Content-Type"] = "application/json"
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def set_api_key(self, api_key: Optional[str]):
        self.api_key = api_key

    def upload_classes(self, records: Sequence[ClassRecord]) -> UploadResult:
        """
        Upload class records to the backend in batches.

        Args:
            records: Records to send, in the order they should be batched

        Returns:
            Aggregate counts, one error string per failed batch and the
            per-batch breakdown
        """
        result = UploadResult()

        if not records:
            logger.warning("No classes to upload")
            return result

        total_batches = (len(records) + self.batch_size - 1) // self.batch_size
        logger.info(f"Uploading {len(records)} classes to backend in batches of {self.batch_size}")

        for index, start in enumerate(range(0, len(records), self.batch_size), start=1):
            batch = records[start:start + self.batch_size]
            logger.info(f"Processing batch {index}/{total_batches} ({len(batch)} classes)")

            batch_result = BatchResult(index=index, start=start, size=len(batch))
            try:
                batch_result.uploaded = self._post_batch(batch)
                logger.info(f"Batch {index} uploaded: {batch_result.uploaded} classes")
            except (requests.RequestException, MalformedResponseError) as e:
                batch_result.error = f"Batch {index} failed: {e}"
                logger.error(batch_result.error)
                result.errors.append(batch_result.error)
                result.success = False

            result.batches.append(batch_result)
            result.uploaded += batch_result.uploaded
            result.failed += batch_result.failed

            if start + self.batch_size < len(records) and self.batch_delay > 0:
                self._sleep(self.batch_delay)

        logger.info(f"Upload complete. Uploaded: {result.uploaded}, Failed: {result.failed}")
        return result

    def _post_batch(self, batch: Sequence[ClassRecord]) -> int:
        response = self.session.post(
            f"{self.base_url}{CLASSES_PATH}",
            json={"classes": [record.to_payload() for record in batch]},
            headers=self._headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"invalid JSON in response: {e}") from e
        if not isinstance(body, dict):
            raise MalformedResponseError(f"expected a JSON object, got {type(body).__name__}")

        uploaded = body.get("uploaded")
        if uploaded is None:
            return len(batch)
        if isinstance(uploaded, bool) or not isinstance(uploaded, int):
            raise MalformedResponseError(f"'uploaded' is not an integer: {uploaded!r}")
        return max(0, min(uploaded, len(batch)))

    def upload_class(self, record: ClassRecord) -> bool:
        """Upload a single class."""
        result = self.upload_classes([record])
        return result.success and result.uploaded == 1

    def test_connection(self) -> bool:
        """Ping the backend health endpoint."""
        try:
            response = self.session.get(f"{self.base_url}{HEALTH_PATH}", timeout=5)
        except requests.RequestException as e:
            logger.error(f"Backend connection test failed: {e}")
            return False

        if response.ok:
            logger.info("Backend connection test successful")
            return True
        logger.warning(f"Backend connection test failed: HTTP {response.status_code}")
        return False

    def get_stats(self) -> Optional[Dict[str, Any]]:
        try:
            response = self.session.get(
                f"{self.base_url}{STATS_PATH}",
                headers=self._headers(json_body=False),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to get backend stats: {e}")
            return None

    def class_exists(self, provider_id: str, class_datetime: datetime) -> bool:
        """Ask the backend whether it already holds this class."""
        try:
            response = self.session.post(
                f"{self.base_url}{CHECK_PATH}",
                json={"providerId": provider_id, "datetime": class_datetime.isoformat()},
                headers=self._headers(),
                timeout=self.timeout,
            )
            if not response.ok:
                return False
            return response.json().get("exists") is True
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.error(f"Error checking class existence: {e}")
            return False
