from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import requests

from schedule_scraper.backend import BackendClient
from schedule_scraper.database.models import RUN_COMPLETED, RUN_FAILED, RUN_RUNNING, ScrapeOptions
from schedule_scraper.pipeline import (
    RunStateError,
    RunTracker,
    ingest_records,
    reconcile_stale_runs,
    run_provider,
    run_providers,
    upload_pending,
)

from .conftest import BASE_TIME, StubProvider, StubResponse, StubSession, make_record, make_records


def make_client(responses=None, batch_size=50):
    return BackendClient("http://backend.test", session=StubSession(responses), batch_size=batch_size, sleep=lambda s: None)


def test_duplicates_are_dropped_across_runs(store) -> None:
    first = run_provider(StubProvider(records=[make_record()]), store, upload=False)
    second = run_provider(StubProvider(records=[make_record()]), store, upload=False)

    assert len(store.classes) == 1
    assert first.tally.accepted == 1
    assert second.tally.duplicate == 1
    assert second.status == RUN_COMPLETED
    assert store.get_run(second.run_id).classes_found == 1


def test_duplicates_within_one_run(store) -> None:
    report = run_provider(StubProvider(records=[make_record(), make_record(name="Renamed")]), store, upload=False)

    assert (report.tally.seen, report.tally.accepted, report.tally.duplicate) == (2, 1, 1)
    assert store.classes[0].name == "Reformer Pilates"


def test_start_time_must_match_exactly(store) -> None:
    shifted = make_record(datetime=BASE_TIME + timedelta(milliseconds=1))

    run_provider(StubProvider(records=[make_record(), shifted]), store, upload=False)

    assert len(store.classes) == 2


def test_equal_instants_in_other_offsets_are_duplicates(store) -> None:
    brussels = timezone(timedelta(hours=2))
    same_instant = make_record(datetime=BASE_TIME.astimezone(brussels))

    report = run_provider(StubProvider(records=[make_record(), same_instant]), store, upload=False)

    assert report.tally.duplicate == 1


def test_invalid_candidates_are_counted_not_stored(store) -> None:
    candidates = [make_record(intensity=11), make_record(price=-1), {"name": "half a record"}, make_record()]

    report = run_provider(StubProvider(records=candidates), store, upload=False)

    assert report.status == RUN_COMPLETED
    assert (report.tally.seen, report.tally.invalid, report.tally.accepted) == (4, 3, 1)
    assert store.get_run(report.run_id).classes_found == 4


def test_zero_records_is_a_completed_run(store) -> None:
    report = run_provider(StubProvider(records=[]), store, upload=False)

    run = store.get_run(report.run_id)
    assert run.status == RUN_COMPLETED
    assert (run.classes_found, run.classes_uploaded, run.errors) == (0, 0, None)
    assert run.is_terminal
    assert store.get_provider_stats("rite").successful_runs == 1


def test_provider_exception_keeps_rows_and_fails_run(store) -> None:
    provider = StubProvider(records=make_records(8), raise_after=5)

    report = run_provider(provider, store, upload=False)

    run = store.get_run(report.run_id)
    assert len(store.classes) == 5
    assert report.status == RUN_FAILED
    assert run.status == RUN_FAILED
    assert run.classes_found == 5
    assert "ConnectionError: schedule page went away" in run.errors
    assert store.complete_calls == [report.run_id]

    stats = store.get_provider_stats("rite")
    assert (stats.total_runs, stats.successful_runs, stats.total_classes_found) == (1, 0, 5)


def test_store_failure_fails_run(store) -> None:
    store.fail_inserts_after = 2

    report = run_provider(StubProvider(records=make_records(4)), store, upload=False)

    assert report.status == RUN_FAILED
    assert len(store.classes) == 2
    assert "RuntimeError: disk full" in store.get_run(report.run_id).errors


def test_provider_reported_failure(store) -> None:
    provider = StubProvider(records=make_records(2), errors=["Schedule container not found"], success=False)

    report = run_provider(provider, store, upload=False)

    run = store.get_run(report.run_id)
    assert run.status == RUN_FAILED
    assert run.errors == "Schedule container not found"
    assert len(store.classes) == 2


def test_options_reach_the_provider(store) -> None:
    provider = StubProvider()
    options = ScrapeOptions(max_results=3)

    run_provider(provider, store, options=options, upload=False)

    assert provider.options is options


def test_run_uploads_and_marks_its_rows(store) -> None:
    client = make_client([StubResponse(200, {"uploaded": 3})])

    report = run_provider(StubProvider(records=make_records(3)), store, client)

    run = store.get_run(report.run_id)
    assert (run.classes_found, run.classes_uploaded) == (3, 3)
    assert all(c.uploaded for c in store.classes)
    assert client.session.calls[0]["json"]["classes"][0]["providerId"] == "rite-0"


def test_upload_failure_does_not_fail_the_run(store) -> None:
    client = make_client([requests.ConnectionError("backend down")])

    report = run_provider(StubProvider(records=make_records(3)), store, client)

    run = store.get_run(report.run_id)
    assert run.status == RUN_COMPLETED
    assert run.classes_uploaded == 0
    assert run.errors == "Batch 1 failed: backend down"
    assert not any(c.uploaded for c in store.classes)


def test_partial_upload_marks_only_acknowledged_rows(store) -> None:
    client = make_client([StubResponse(200, {"uploaded": 2}), requests.Timeout("timed out")], batch_size=2)

    run_provider(StubProvider(records=make_records(4)), store, client)

    assert [c.uploaded for c in store.classes] == [True, True, False, False]


def test_upload_pending_retries_leftovers(store) -> None:
    run_provider(StubProvider(records=make_records(3)), store, upload=False)
    client = make_client([StubResponse(200, {"uploaded": 3})])

    result = upload_pending(store, client)

    assert result.uploaded == 3
    assert store.unuploaded_classes() == []


def test_upload_pending_with_nothing_to_do(store) -> None:
    client = make_client()

    result = upload_pending(store, client)

    assert (result.success, result.uploaded) == (True, 0)
    assert client.session.calls == []


def test_ingest_records_accepts_raw_mappings(store) -> None:
    raw = make_record().to_payload()

    tally = ingest_records(store, "run-1", [raw])

    assert tally.accepted == 1
    assert store.classes[0].datetime == BASE_TIME
    assert store.classes[0].provider_record_id == "rite-1"


def test_run_providers_continues_after_failure(store) -> None:
    providers = [
        StubProvider(name="koepel", records=make_records(2, "koepel"), raise_after=0),
        StubProvider(name="rite", records=make_records(2)),
    ]

    reports = run_providers(providers, store, upload=False)

    assert [r.status for r in reports] == [RUN_FAILED, RUN_COMPLETED]
    assert [s.name for s in store.all_provider_stats()] == ["koepel", "rite"]


def test_tracker_closes_once(store) -> None:
    tracker = RunTracker(store, "rite")
    tracker.start()
    tracker.complete(0, 0)

    with pytest.raises(RunStateError):
        tracker.fail(0, 0, "late failure")
    with pytest.raises(RunStateError):
        tracker.start()

    assert store.get_run(tracker.run_id).status == RUN_COMPLETED
    assert store.get_provider_stats("rite").total_runs == 1


def test_tracker_cannot_close_before_start(store) -> None:
    with pytest.raises(RunStateError):
        RunTracker(store, "rite").complete(0, 0)


def test_reconcile_stale_runs(store) -> None:
    stale = store.create_run("rite")
    store.runs[stale].started_at = datetime.now(timezone.utc) - timedelta(hours=8)
    fresh = store.create_run("rite")

    closed = reconcile_stale_runs(store, timedelta(hours=6))

    assert closed == [stale]
    assert store.get_run(stale).status == RUN_FAILED
    assert store.get_run(stale).errors.startswith("abandoned")
    assert store.get_run(fresh).status == RUN_RUNNING
    assert store.get_provider_stats("rite").successful_runs == 0


@pytest.mark.parametrize("overrides", [{"trainer_info": "Jan"}, {"amenities": ["showers"]}])
def test_malformed_enrichment_is_dropped_without_failing_the_run(store, overrides) -> None:
    candidates = [make_record(provider_record_id="bad", **overrides)] + make_records(3)

    report = run_provider(StubProvider(records=candidates), store, upload=False)

    assert report.status == RUN_COMPLETED
    assert (report.tally.invalid, report.tally.accepted) == (1, 3)
    assert len(store.classes) == 3


def test_store_error_while_failing_a_run_is_reported(store, monkeypatch) -> None:
    complete_run = store.complete_run

    def lose_connection_once(run_id, success, *args, **kwargs):
        if not success:
            raise RuntimeError("connection lost")
        return complete_run(run_id, success, *args, **kwargs)

    monkeypatch.setattr(store, "complete_run", lose_connection_once)
    providers = [
        StubProvider(name="koepel", records=make_records(2, "koepel"), raise_after=0),
        StubProvider(name="rite", records=make_records(2)),
    ]

    reports = run_providers(providers, store, upload=False)

    assert [r.status for r in reports] == [RUN_FAILED, RUN_COMPLETED]
    assert reports[0].errors[-1] == "RuntimeError: connection lost"
    assert store.get_run(reports[0].run_id).status == RUN_RUNNING
    monkeypatch.undo()
    assert reconcile_stale_runs(store, timedelta(0)) == [reports[0].run_id]
