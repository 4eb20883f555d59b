"""
Runtime configuration, read from the environment (and a local .env file).
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_BACKEND_URL = "http://localhost:3000"
DEFAULT_PROVIDERS_CONFIG = os.path.join("config", "providers.json")


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Plain configuration values consumed by the pipeline."""
    database_url: Optional[str] = None
    backend_url: str = DEFAULT_BACKEND_URL
    backend_api_key: Optional[str] = None
    batch_size: int = 50
    upload_timeout: float = 30.0
    batch_delay: float = 1.0
    providers_config: str = DEFAULT_PROVIDERS_CONFIG
    headless: bool = True
    stale_run_hours: float = 6.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``environ`` (defaults to os.environ after loading .env)."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        return cls(
            database_url=environ.get("DATABASE_URL") or None,
            backend_url=environ.get("BACKEND_URL") or DEFAULT_BACKEND_URL,
            backend_api_key=environ.get("BACKEND_API_KEY") or None,
            batch_size=int(environ.get("UPLOAD_BATCH_SIZE") or 50),
            upload_timeout=float(environ.get("UPLOAD_TIMEOUT") or 30.0),
            batch_delay=float(environ.get("UPLOAD_BATCH_DELAY") or 1.0),
            providers_config=environ.get("PROVIDERS_CONFIG") or DEFAULT_PROVIDERS_CONFIG,
            headless=_as_bool(environ.get("HEADLESS"), True),
            stale_run_hours=float(environ.get("STALE_RUN_HOURS") or 6.0),
            log_level=environ.get("LOG_LEVEL") or "INFO",
        )
