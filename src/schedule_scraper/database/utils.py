"""
Database utilities for storing scrape runs and classes in PostgreSQL.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import psycopg
from psycopg.types.json import Jsonb
from dotenv import load_dotenv

from .models import (
    Amenity,
    Location,
    PricingDetails,
    ProviderStats,
    ScrapeRun,
    StoredClass,
    TrainerInfo,
)

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

CLASS_COLUMNS = (
    "scrape_run_id",
    "name",
    "description",
    "class_datetime",
    "location_name",
    "location_address",
    "location_lat",
    "location_long",
    "trainer",
    "intensity",
    "price",
    "booking_url",
    "provider_id",
    "provider_name",
    "capacity",
    "tags",
    "photos",
    "trainer_info",
    "amenities",
    "real_time_availability",
    "booking_status",
    "last_availability_check",
    "pricing_details",
)


def resolve_database_url(database_url: Optional[str] = None) -> str:
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set. Please set it in your .env file.")
    return url


def ensure_schema(conn: psycopg.Connection):
    """Create tables if they don't exist."""
    with conn.cursor() as cur:
        cur.execute("""
        CREATE TABLE IF NOT EXISTS scrape_runs (
            run_id TEXT PRIMARY KEY,
            provider TEXT NOT NULL,
            started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            ended_at TIMESTAMPTZ,
            status TEXT NOT NULL DEFAULT 'running'
                CHECK (status IN ('running', 'completed', 'failed')),
            classes_found INTEGER NOT NULL DEFAULT 0,
            classes_uploaded INTEGER NOT NULL DEFAULT 0,
            errors TEXT,
            git_sha TEXT
        );
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS provider_stats (
            name TEXT PRIMARY KEY,
            enabled BOOLEAN NOT NULL DEFAULT TRUE,
            last_scrape TIMESTAMPTZ,
            total_runs INTEGER NOT NULL DEFAULT 0,
            successful_runs INTEGER NOT NULL DEFAULT 0,
            total_classes_found INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS scraped_classes (
            id BIGSERIAL PRIMARY KEY,
            scrape_run_id TEXT NOT NULL REFERENCES scrape_runs(run_id),
            name TEXT NOT NULL,
            description TEXT,
            class_datetime TIMESTAMPTZ NOT NULL,
            location_name TEXT NOT NULL,
            location_address TEXT NOT NULL,
            location_lat DOUBLE PRECISION NOT NULL,
            location_long DOUBLE PRECISION NOT NULL,
            trainer TEXT,
            intensity INTEGER CHECK (intensity BETWEEN 1 AND 10),
            price DOUBLE PRECISION,
            booking_url TEXT,
            provider_id TEXT NOT NULL,
            provider_name TEXT NOT NULL,
            capacity INTEGER,
            tags JSONB NOT NULL DEFAULT '[]',
            uploaded_to_backend BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        """)

        # Enrichment columns were added after the first release
        cur.execute("""
        ALTER TABLE scraped_classes
            ADD COLUMN IF NOT EXISTS photos JSONB,
            ADD COLUMN IF NOT EXISTS trainer_info JSONB,
            ADD COLUMN IF NOT EXISTS amenities JSONB,
            ADD COLUMN IF NOT EXISTS real_time_availability INTEGER,
            ADD COLUMN IF NOT EXISTS booking_status TEXT
                CHECK (booking_status IN ('open', 'closed', 'full', 'waitlist')),
            ADD COLUMN IF NOT EXISTS last_availability_check TIMESTAMPTZ,
            ADD COLUMN IF NOT EXISTS pricing_details JSONB;
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS ix_runs_provider ON scrape_runs(provider, started_at);")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_classes_run ON scraped_classes(scrape_run_id);")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_classes_identity ON scraped_classes(provider_id, class_datetime);")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_classes_provider ON scraped_classes(provider_name);")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_classes_uploaded ON scraped_classes(uploaded_to_backend);")
        cur.execute("CREATE INDEX IF NOT EXISTS ix_classes_booking_status ON scraped_classes(booking_status);")


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Interpret naive datetimes as UTC so TIMESTAMPTZ comparisons are exact."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _json_or_none(value: Any) -> Optional[Jsonb]:
    return None if value is None else Jsonb(value)


def class_to_row(run_id: str, record) -> tuple:
    """Convert a ClassRecord into the column tuple matching CLASS_COLUMNS."""
    return (
        run_id,
        record.name,
        record.description,
        ensure_aware(record.datetime),
        record.location.name,
        record.location.address,
        record.location.lat,
        record.location.long,
        record.trainer,
        record.intensity,
        record.price,
        record.booking_url,
        record.provider_record_id,
        record.provider_name,
        record.capacity,
        Jsonb(sorted(record.tags)),
        _json_or_none(list(record.photos) if record.photos is not None else None),
        _json_or_none(record.trainer_info.to_dict() if record.trainer_info else None),
        _json_or_none([a.to_dict() for a in record.amenities] if record.amenities is not None else None),
        record.real_time_availability,
        record.booking_status,
        ensure_aware(record.last_availability_check),
        _json_or_none(record.pricing_details.to_dict() if record.pricing_details else None),
    )


def _loads(value: Any) -> Any:
    # psycopg decodes JSONB already; plain TEXT columns come back as str
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def row_to_stored_class(row: Dict[str, Any]) -> StoredClass:
    """Convert a scraped_classes row (dict_row) back into a StoredClass."""
    photos = _loads(row.get("photos"))
    trainer_info = _loads(row.get("trainer_info"))
    amenities = _loads(row.get("amenities"))
    pricing = _loads(row.get("pricing_details"))

    return StoredClass(
        id=row["id"],
        scrape_run_id=row["scrape_run_id"],
        uploaded=bool(row["uploaded_to_backend"]),
        created_at=row.get("created_at"),
        name=row["name"],
        description=row["description"],
        datetime=row["class_datetime"],
        location=Location(
            name=row["location_name"],
            address=row["location_address"],
            lat=row["location_lat"],
            long=row["location_long"],
        ),
        trainer=row["trainer"],
        intensity=row["intensity"],
        price=row["price"],
        booking_url=row["booking_url"],
        provider_record_id=row["provider_id"],
        provider_name=row["provider_name"],
        capacity=row["capacity"],
        tags=frozenset(_loads(row["tags"]) or ()),
        photos=tuple(photos) if photos is not None else None,
        trainer_info=TrainerInfo.from_dict(trainer_info) if trainer_info else None,
        amenities=tuple(Amenity.from_dict(a) for a in amenities) if amenities is not None else None,
        real_time_availability=row.get("real_time_availability"),
        booking_status=row.get("booking_status"),
        last_availability_check=row.get("last_availability_check"),
        pricing_details=PricingDetails.from_dict(pricing) if pricing else None,
    )


def row_to_run(row: Dict[str, Any]) -> ScrapeRun:
    return ScrapeRun(
        run_id=row["run_id"],
        provider=row["provider"],
        started_at=row["started_at"],
        ended_at=row["ended_at"],
        status=row["status"],
        classes_found=row["classes_found"],
        classes_uploaded=row["classes_uploaded"],
        errors=row["errors"],
        git_sha=row["git_sha"],
    )


def row_to_stats(row: Dict[str, Any]) -> ProviderStats:
    return ProviderStats(
        name=row["name"],
        enabled=bool(row["enabled"]),
        last_scrape=row["last_scrape"],
        total_runs=row["total_runs"],
        successful_runs=row["successful_runs"],
        total_classes_found=row["total_classes_found"],
    )


def check_connection(database_url: Optional[str] = None) -> bool:
    """Test the database connection."""
    try:
        with psycopg.connect(resolve_database_url(database_url)) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                result = cur.fetchone()
                if result and result[0] == 1:
                    logger.info("Database connection successful")
                    return True
    except (RuntimeError, psycopg.Error) as e:
        logger.error(f"Database connection failed: {e}")
        return False

    return False
