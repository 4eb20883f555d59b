"""Shared fixtures: an in-memory store double, stub providers and records."""

from __future__ import annotations

import uuid
from dataclasses import fields
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

import pytest

from schedule_scraper.database.models import (
    RUN_COMPLETED,
    RUN_FAILED,
    RUN_RUNNING,
    Amenity,
    ClassRecord,
    Location,
    PricingDetails,
    PricingPackage,
    ProviderStats,
    ScrapeOptions,
    ScrapeResult,
    ScrapeRun,
    StoredClass,
    TrainerInfo,
)

BASE_TIME = datetime(2025, 6, 26, 17, 30, tzinfo=timezone.utc)


def make_record(**overrides: Any) -> ClassRecord:
    values: Dict[str, Any] = dict(
        name="Reformer Pilates",
        description="Full body reformer session",
        datetime=BASE_TIME,
        location=Location(name="Rite", address="Main Street 1", lat=51.05, long=3.72),
        trainer="Sofie",
        intensity=5,
        price=25.0,
        booking_url="https://rite.trainin.app/book/1",
        provider_record_id="rite-1",
        provider_name="rite",
        capacity=10,
        tags=frozenset({"pilates"}),
    )
    values.update(overrides)
    return ClassRecord(**values)


def make_records(count: int, provider: str = "rite") -> List[ClassRecord]:
    return [
        make_record(provider_record_id=f"{provider}-{i}", provider_name=provider, datetime=BASE_TIME + timedelta(hours=i))
        for i in range(count)
    ]


def make_enriched_record(**overrides: Any) -> ClassRecord:
    values: Dict[str, Any] = dict(
        tags=frozenset({"pilates", "core"}),
        photos=("a.jpg", "b.jpg"),
        trainer_info=TrainerInfo(name="Sofie", bio="Former dancer", certifications=("STOTT",), years_experience=6),
        amenities=(Amenity(type="showers", available=True), Amenity(type="parking", available=False, description="street")),
        real_time_availability=4,
        booking_status="open",
        last_availability_check=datetime(2025, 6, 26, 8, 0, tzinfo=timezone.utc),
        pricing_details=PricingDetails(
            drop_in=25.0,
            packages=(PricingPackage(name="10 classes", price=200.0, classes=10),),
            intro_offer={"description": "First class free", "price": 0},
        ),
    )
    values.update(overrides)
    return make_record(**values)


class FakeStore:
    """In-memory stand-in for ClassStore with the same method surface."""

    def __init__(self) -> None:
        self.runs: Dict[str, ScrapeRun] = {}
        self.classes: List[StoredClass] = []
        self.stats: Dict[str, ProviderStats] = {}
        self.complete_calls: List[str] = []
        self.fail_inserts_after: Optional[int] = None

    def create_run(self, provider: str, git_sha: Optional[str] = None) -> str:
        run_id = str(uuid.uuid4())
        self.runs[run_id] = ScrapeRun(run_id=run_id, provider=provider, started_at=datetime.now(timezone.utc))
        return run_id

    def complete_run(self, run_id, success, classes_found, classes_uploaded, errors=None) -> None:
        run = self.runs[run_id]
        run.status = RUN_COMPLETED if success else RUN_FAILED
        run.ended_at = datetime.now(timezone.utc)
        run.classes_found = classes_found
        run.classes_uploaded = classes_uploaded
        run.errors = errors or None
        self.complete_calls.append(run_id)

    def get_run(self, run_id: str) -> Optional[ScrapeRun]:
        return self.runs.get(run_id)

    def recent_runs(self, limit: int = 10) -> List[ScrapeRun]:
        return sorted(self.runs.values(), key=lambda r: r.started_at, reverse=True)[:limit]

    def stale_runs(self, older_than: timedelta) -> List[ScrapeRun]:
        cutoff = datetime.now(timezone.utc) - older_than
        return [r for r in self.runs.values() if r.status == RUN_RUNNING and r.started_at < cutoff]

    def insert_class(self, run_id: str, record: ClassRecord) -> int:
        if self.fail_inserts_after is not None and len(self.classes) >= self.fail_inserts_after:
            raise RuntimeError("disk full")
        values = {f.name: getattr(record, f.name) for f in fields(ClassRecord)}
        stored = StoredClass(**values, id=len(self.classes) + 1, scrape_run_id=run_id)
        self.classes.append(stored)
        return stored.id

    def is_duplicate(self, provider_record_id: str, class_datetime: datetime) -> bool:
        return any(
            c.provider_record_id == provider_record_id and c.datetime == class_datetime for c in self.classes
        )

    def unuploaded_classes(self, limit: Optional[int] = None) -> List[StoredClass]:
        pending = [c for c in self.classes if not c.uploaded]
        return pending[:limit] if limit else pending

    def classes_for_run(self, run_id: str) -> List[StoredClass]:
        return [c for c in self.classes if c.scrape_run_id == run_id]

    def mark_uploaded(self, class_ids: Iterable[int]) -> None:
        ids = set(class_ids)
        for c in self.classes:
            if c.id in ids:
                c.uploaded = True

    def update_provider_stats(self, name: str, success: bool, classes_found: int) -> None:
        stats = self.stats.setdefault(name, ProviderStats(name=name))
        stats.last_scrape = datetime.now(timezone.utc)
        stats.total_runs += 1
        stats.successful_runs += 1 if success else 0
        stats.total_classes_found += classes_found

    def get_provider_stats(self, name: str) -> Optional[ProviderStats]:
        return self.stats.get(name)

    def all_provider_stats(self) -> List[ProviderStats]:
        return [self.stats[name] for name in sorted(self.stats)]


class StubProvider:
    """Provider double yielding prepared candidates, optionally raising part way."""

    def __init__(
        self,
        name: str = "rite",
        records: Iterable[Any] = (),
        errors: Optional[List[str]] = None,
        success: bool = True,
        raise_after: Optional[int] = None,
        enabled: bool = True,
    ) -> None:
        self.name = name
        self.records = list(records)
        self.errors = errors or []
        self.success = success
        self.raise_after = raise_after
        self.enabled = enabled
        self.options: Optional[ScrapeOptions] = None

    def _produce(self):
        for i, record in enumerate(self.records):
            if self.raise_after is not None and i == self.raise_after:
                raise ConnectionError("schedule page went away")
            yield record
        if self.raise_after is not None and self.raise_after >= len(self.records):
            raise ConnectionError("schedule page went away")

    def scrape(self, options: ScrapeOptions) -> ScrapeResult:
        self.options = options
        return ScrapeResult(provider=self.name, records=self._produce(), errors=list(self.errors), success=self.success)


class StubResponse:
    def __init__(self, status_code: int = 200, body: Any = None, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self._body = body
        self._invalid_json = invalid_json

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def raise_for_status(self) -> None:
        import requests

        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._body


class StubSession:
    """Records requests and replays queued responses (or exceptions)."""

    def __init__(self, responses: Optional[List[Any]] = None) -> None:
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    def _next(self, method: str, url: str, **kwargs: Any) -> StubResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0) if self.responses else StubResponse(200, {})
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url: str, **kwargs: Any) -> StubResponse:
        return self._next("POST", url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> StubResponse:
        return self._next("GET", url, **kwargs)


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def record() -> ClassRecord:
    return make_record()
