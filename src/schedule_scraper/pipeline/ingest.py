"""
Ingestion Pipeline

Provider output -> validation -> duplicate filter -> local store -> backend.
Invalid and duplicate candidates are routine outcomes: they are counted,
never raised.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Iterable, List, Optional, Sequence

from ..backend.client import UploadResult
from ..database.models import RUN_COMPLETED, RUN_FAILED, ScrapeOptions
from ..validation import normalize_record, validate_class_record
from .tracker import RunTracker

logger = logging.getLogger(__name__)


@dataclass
class IngestTally:
    """What happened to every candidate a provider produced."""
    seen: int = 0
    accepted: int = 0
    invalid: int = 0
    duplicate: int = 0
    class_ids: List[int] = field(default_factory=list)


@dataclass
class RunReport:
    run_id: str
    provider: str
    status: str
    tally: IngestTally
    uploaded: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == RUN_COMPLETED


def admit(store, record) -> bool:
    """True when no stored row shares the record's (provider id, start time)."""
    return not store.is_duplicate(*record.identity)


def ingest_records(store, run_id: str, candidates: Iterable[Any], tally: Optional[IngestTally] = None) -> IngestTally:
    """
    Validate, de-duplicate and persist candidates one at a time.

    Rows are written as they arrive, so if ``candidates`` raises part way
    through, everything inserted before the exception stays in the store and
    ``tally`` (when passed in) still reflects it.

    Args:
        store: Local store
        run_id: Owning scrape run
        candidates: ClassRecords or raw mappings, possibly a generator
        tally: Optional tally to update in place

    Returns:
        The tally of seen/accepted/invalid/duplicate candidates
    """
    tally = tally if tally is not None else IngestTally()
    iterator = iter(candidates)
    try:
        for candidate in iterator:
            tally.seen += 1

            if not validate_class_record(candidate):
                tally.invalid += 1
                logger.debug(f"Dropping invalid class: {getattr(candidate, 'name', candidate)!r}")
                continue

            record = normalize_record(candidate)
            if not admit(store, record):
                tally.duplicate += 1
                logger.debug(f"Dropping duplicate class {record.provider_record_id} at {record.datetime}")
                continue

            tally.class_ids.append(store.insert_class(run_id, record))
            tally.accepted += 1
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()

    return tally


def upload_stored(store, client, classes: Sequence[Any]) -> UploadResult:
    """Send stored rows to the backend and flag the ones it acknowledged."""
    result = client.upload_classes(classes)
    accepted = result.acknowledged(classes)
    store.mark_uploaded([stored.id for stored in accepted])
    return result


def upload_pending(store, client, limit: Optional[int] = None) -> UploadResult:
    """Retry every row that has not reached the backend yet."""
    classes = store.unuploaded_classes(limit)
    if not classes:
        logger.info("No pending classes to upload")
        return UploadResult()

    logger.info(f"Uploading {len(classes)} pending classes...")
    result = upload_stored(store, client, classes)
    logger.info(f"Upload complete: {result.uploaded} uploaded, {result.failed} failed")
    return result


def run_provider(
    provider,
    store,
    client=None,
    options: Optional[ScrapeOptions] = None,
    upload: bool = True,
) -> RunReport:
    """
    Scrape one provider to completion and record the run.

    Provider exceptions and upload failures are reported in the returned
    RunReport rather than raised, so callers can move on to the next provider.
    """
    options = options or ScrapeOptions()
    tracker = RunTracker(store, provider.name)
    run_id = tracker.start()
    tally = IngestTally()
    uploaded = 0
    errors: List[str] = []
    result = None

    try:
        logger.info(f"Scraping {provider.name}...")
        result = provider.scrape(options)
        ingest_records(store, run_id, result.records, tally)
        errors.extend(result.errors)
        logger.info(
            f"[{provider.name}] {tally.seen} found, {tally.accepted} stored, "
            f"{tally.invalid} invalid, {tally.duplicate} duplicates"
        )

        if upload and client is not None:
            pending = [c for c in store.classes_for_run(run_id) if not c.uploaded]
            if pending:
                upload_result = upload_stored(store, client, pending)
                uploaded = upload_result.uploaded
                errors.extend(upload_result.errors)

    except Exception as e:
        message = f"{type(e).__name__}: {e}"
        logger.exception(f"Error scraping {provider.name}")
        if result is not None and not errors:
            errors.extend(result.errors)
        errors.append(message)
        try:
            tracker.fail(tally.seen, uploaded, "; ".join(errors))
        except Exception as close_error:
            # left in the running state; reconcile_stale_runs closes it later
            logger.exception(f"Could not record failed run {run_id} for {provider.name}")
            errors.append(f"{type(close_error).__name__}: {close_error}")
        return RunReport(run_id, provider.name, RUN_FAILED, tally, uploaded, errors)

    if result.success:
        tracker.complete(tally.seen, uploaded, errors)
    else:
        tracker.fail(tally.seen, uploaded, "; ".join(errors) or "provider reported failure")
    return RunReport(run_id, provider.name, tracker.status, tally, uploaded, errors)


def run_providers(providers: Iterable[Any], store, client=None, options=None, upload: bool = True) -> List[RunReport]:
    """Run providers back to back; one failing run never stops the rest."""
    reports = []
    for provider in providers:
        reports.append(run_provider(provider, store, client, options, upload))
    return reports


def reconcile_stale_runs(store, max_age: timedelta) -> List[str]:
    """
    Fail runs left in the running state by a crashed process.

    Returns:
        Ids of the runs that were closed
    """
    closed = []
    for run in store.stale_runs(max_age):
        store.complete_run(
            run.run_id,
            False,
            run.classes_found,
            run.classes_uploaded,
            f"abandoned: still running after {max_age}",
        )
        store.update_provider_stats(run.provider, False, run.classes_found)
        logger.warning(f"Marked stale run {run.run_id} ({run.provider}) as failed")
        closed.append(run.run_id)
    return closed
