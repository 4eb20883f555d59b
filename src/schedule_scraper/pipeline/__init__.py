"""
Pipeline Package

Run tracking, duplicate-aware ingestion and uploads of stored classes.
"""

from .ingest import (
    IngestTally,
    RunReport,
    ingest_records,
    reconcile_stale_runs,
    run_provider,
    run_providers,
    upload_pending,
)
from .tracker import RunStateError, RunTracker

__all__ = [
    "IngestTally",
    "RunReport",
    "RunStateError",
    "RunTracker",
    "ingest_records",
    "reconcile_stale_runs",
    "run_provider",
    "run_providers",
    "upload_pending",
]
