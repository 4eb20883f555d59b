"""
Local Store

Durable record of scrape runs, provider health stats and scraped classes.
Single writer: every method runs in autocommit mode and no transaction spans
more than one statement.
"""

import logging
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import psycopg
from psycopg.rows import dict_row

from .models import (
    RUN_COMPLETED,
    RUN_FAILED,
    RUN_RUNNING,
    ClassRecord,
    ProviderStats,
    ScrapeRun,
    StoredClass,
)
from .utils import (
    CLASS_COLUMNS,
    class_to_row,
    ensure_aware,
    ensure_schema,
    resolve_database_url,
    row_to_run,
    row_to_stats,
    row_to_stored_class,
)

logger = logging.getLogger(__name__)

_INSERT_CLASS = (
    f"INSERT INTO scraped_classes ({', '.join(CLASS_COLUMNS)}) "
    f"VALUES ({', '.join(['%s'] * len(CLASS_COLUMNS))}) RETURNING id"
)


class ClassStore:
    """Persistence for runs, provider stats and scraped class rows."""

    def __init__(self, conn: psycopg.Connection):
        self.conn = conn
        ensure_schema(conn)

    @classmethod
    def connect(cls, database_url: Optional[str] = None) -> "ClassStore":
        conn = psycopg.connect(resolve_database_url(database_url), autocommit=True)
        logger.info("Local store connected")
        return cls(conn)

    def close(self):
        self.conn.close()
        logger.info("Local store connection closed")

    def __enter__(self) -> "ClassStore":
        return self

    def __exit__(self, *exc_info):
        self.close()

    # Scrape runs

    def create_run(self, provider: str, git_sha: Optional[str] = None) -> str:
        """Insert a new scrape run in the running state and return its id."""
        run_id = str(uuid.uuid4())
        git_sha = git_sha or os.getenv("GITHUB_SHA")
        with self.conn.cursor() as cur:
            cur.execute(
                "INSERT INTO scrape_runs (run_id, provider, status, git_sha) VALUES (%s, %s, %s, %s)",
                (run_id, provider, RUN_RUNNING, git_sha),
            )
        return run_id

    def complete_run(
        self,
        run_id: str,
        success: bool,
        classes_found: int,
        classes_uploaded: int,
        errors: Optional[str] = None,
    ):
        """
        Move a run to its terminal state.

        Calling this twice for the same run overwrites the first outcome; the
        RunTracker is what guarantees a single transition.
        """
        with self.conn.cursor() as cur:
            cur.execute(
                """
                UPDATE scrape_runs
                SET ended_at = NOW(),
                    status = %s,
                    classes_found = %s,
                    classes_uploaded = %s,
                    errors = %s
                WHERE run_id = %s
                """,
                (
                    RUN_COMPLETED if success else RUN_FAILED,
                    classes_found,
                    classes_uploaded,
                    errors or None,
                    run_id,
                ),
            )

    def get_run(self, run_id: str) -> Optional[ScrapeRun]:
        with self.conn.cursor(row_factory=dict_row) as cur:
            cur.execute("SELECT * FROM scrape_runs WHERE run_id = %s", (run_id,))
            row = cur.fetchone()
        return row_to_run(row) if row else None

    def recent_runs(self, limit: int = 10) -> List[ScrapeRun]:
        with self.conn.cursor(row_factory=dict_row) as cur:
            cur.execute("SELECT * FROM scrape_runs ORDER BY started_at DESC LIMIT %s", (limit,))
            return [row_to_run(row) for row in cur.fetchall()]

    def stale_runs(self, older_than: timedelta) -> List[ScrapeRun]:
        """Runs still marked running that started before now - older_than."""
        cutoff = datetime.now(timezone.utc) - older_than
        with self.conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                "SELECT * FROM scrape_runs WHERE status = %s AND started_at < %s ORDER BY started_at",
                (RUN_RUNNING, cutoff),
            )
            return [row_to_run(row) for row in cur.fetchall()]

    # Scraped classes

    def insert_class(self, run_id: str, record: ClassRecord) -> int:
        """Persist one class row, not yet uploaded. Uniqueness is the caller's job."""
        with self.conn.cursor() as cur:
            cur.execute(_INSERT_CLASS, class_to_row(run_id, record))
            return cur.fetchone()[0]

    def is_duplicate(self, provider_record_id: str, class_datetime: datetime) -> bool:
        """Exact match on provider id and start time, across every run ever stored."""
        with self.conn.cursor() as cur:
            cur.execute(
                "SELECT EXISTS (SELECT 1 FROM scraped_classes WHERE provider_id = %s AND class_datetime = %s)",
                (provider_record_id, ensure_aware(class_datetime)),
            )
            return bool(cur.fetchone()[0])

    def unuploaded_classes(self, limit: Optional[int] = None) -> List[StoredClass]:
        """Rows not yet accepted by the backend, oldest first."""
        query = "SELECT * FROM scraped_classes WHERE uploaded_to_backend = FALSE ORDER BY id"
        params: tuple = ()
        if limit:
            query += " LIMIT %s"
            params = (limit,)

        with self.conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, params)
            return [row_to_stored_class(row) for row in cur.fetchall()]

    def classes_for_run(self, run_id: str) -> List[StoredClass]:
        with self.conn.cursor(row_factory=dict_row) as cur:
            cur.execute("SELECT * FROM scraped_classes WHERE scrape_run_id = %s ORDER BY id", (run_id,))
            return [row_to_stored_class(row) for row in cur.fetchall()]

    def mark_uploaded(self, class_ids: Iterable[int]):
        ids = list(class_ids)
        if not ids:
            return
        with self.conn.cursor() as cur:
            cur.execute(
                "UPDATE scraped_classes SET uploaded_to_backend = TRUE WHERE id = ANY(%s)",
                (ids,),
            )

    # Provider stats

    def upsert_provider_stats(self, stats: ProviderStats):
        with self.conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO provider_stats (name, enabled, total_runs, successful_runs, total_classes_found)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (name) DO UPDATE SET
                    enabled = EXCLUDED.enabled,
                    total_runs = EXCLUDED.total_runs,
                    successful_runs = EXCLUDED.successful_runs,
                    total_classes_found = EXCLUDED.total_classes_found
                """,
                (
                    stats.name,
                    stats.enabled,
                    stats.total_runs,
                    stats.successful_runs,
                    stats.total_classes_found,
                ),
            )

    def update_provider_stats(self, name: str, success: bool, classes_found: int):
        """Fold one finished run into the provider's running totals."""
        with self.conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO provider_stats (name, last_scrape, total_runs, successful_runs, total_classes_found)
                VALUES (%s, NOW(), 1, %s, %s)
                ON CONFLICT (name) DO UPDATE SET
                    last_scrape = NOW(),
                    total_runs = provider_stats.total_runs + 1,
                    successful_runs = provider_stats.successful_runs + EXCLUDED.successful_runs,
                    total_classes_found = provider_stats.total_classes_found + EXCLUDED.total_classes_found
                """,
                (name, 1 if success else 0, max(classes_found, 0)),
            )

    def get_provider_stats(self, name: str) -> Optional[ProviderStats]:
        with self.conn.cursor(row_factory=dict_row) as cur:
            cur.execute("SELECT * FROM provider_stats WHERE name = %s", (name,))
            row = cur.fetchone()
        return row_to_stats(row) if row else None

    def all_provider_stats(self) -> List[ProviderStats]:
        with self.conn.cursor(row_factory=dict_row) as cur:
            cur.execute("SELECT * FROM provider_stats ORDER BY name")
            return [row_to_stats(row) for row in cur.fetchall()]
