"""Centralised settings for the Site Harvester backend.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("HARVESTER_WORKSPACE", Path.home() / ".harvester_data")
        ).expanduser()
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite job store."""
        return self.workspace_dir / "jobs.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    # ------------------------------------------------------------------
    # Remote extraction endpoint ("URL -> title + markdown")
    # ------------------------------------------------------------------
    reader_base_url: str = field(
        default_factory=lambda: os.environ.get("READER_BASE_URL", "https://r.jina.ai/")
    )
    reader_api_key: str = field(
        default_factory=lambda: os.environ.get("READER_API_KEY", "")
    )

    # ------------------------------------------------------------------
    # Fetch client
    # ------------------------------------------------------------------
    page_timeout: float = field(
        default_factory=lambda: float(os.environ.get("PAGE_TIMEOUT", "10.0"))
    )
    probe_timeout: float = field(
        default_factory=lambda: float(os.environ.get("PROBE_TIMEOUT", "5.0"))
    )
    fetch_max_retries: int = field(
        default_factory=lambda: int(os.environ.get("FETCH_MAX_RETRIES", "2"))
    )
    rate_limit_backoff_base: float = field(
        default_factory=lambda: float(os.environ.get("RATE_LIMIT_BACKOFF_BASE", "2.0"))
    )
    rate_limit_backoff_cap: float = field(
        default_factory=lambda: float(os.environ.get("RATE_LIMIT_BACKOFF_CAP", "30.0"))
    )
    transport_backoff_step: float = field(
        default_factory=lambda: float(os.environ.get("TRANSPORT_BACKOFF_STEP", "1.0"))
    )
    transport_backoff_cap: float = field(
        default_factory=lambda: float(os.environ.get("TRANSPORT_BACKOFF_CAP", "5.0"))
    )

    # ------------------------------------------------------------------
    # Crawl scheduler
    # ------------------------------------------------------------------
    min_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_MIN_CONCURRENCY", "8"))
    )
    initial_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_INITIAL_CONCURRENCY", "12"))
    )
    max_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_MAX_CONCURRENCY", "20"))
    )
    success_streak: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_SUCCESS_STREAK", "10"))
    )
    rate_limit_streak: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_RATE_LIMIT_STREAK", "3"))
    )
    batch_delay: float = field(
        default_factory=lambda: float(os.environ.get("CRAWL_BATCH_DELAY", "0.5"))
    )
    probe_delay: float = field(
        default_factory=lambda: float(os.environ.get("DISCOVERY_PROBE_DELAY", "0.2"))
    )
    min_content_length: int = field(
        default_factory=lambda: int(os.environ.get("MIN_CONTENT_LENGTH", "200"))
    )

    # ------------------------------------------------------------------
    # Job controller
    # ------------------------------------------------------------------
    crawl_time_budget: float = field(
        default_factory=lambda: float(os.environ.get("CRAWL_TIME_BUDGET", "300"))
    )
    checkpoint_interval: float = field(
        default_factory=lambda: float(os.environ.get("CHECKPOINT_INTERVAL", "15"))
    )
    completion_ratio: float = field(
        default_factory=lambda: float(os.environ.get("COMPLETION_RATIO", "0.8"))
    )
    crawl_workers: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_WORKERS", "4"))
    )
    history_limit: int = field(
        default_factory=lambda: int(os.environ.get("HISTORY_LIMIT", "20"))
    )

    # ------------------------------------------------------------------
    # Polling client
    # ------------------------------------------------------------------
    poll_interval: float = field(
        default_factory=lambda: float(os.environ.get("POLL_INTERVAL", "1.0"))
    )
    poll_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("POLL_MAX_ATTEMPTS", "600"))
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton — import this everywhere:
#   from harvester.config import settings
settings = Settings()
