"""Database initialisation and migration helpers.

``init_db(conn)`` is idempotent — safe to call on an existing database.
``migrate(conn)`` runs incremental schema changes tracked in a version table.
"""

from __future__ import annotations

import sqlite3

from harvester.config import settings


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _read_schema() -> str:
    """Load the bundled schema.sql."""
    return settings.schema_path.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def init_db(conn: sqlite3.Connection) -> None:
    """Create the job table and its indexes, then apply pending migrations.

    This function is **idempotent**: every DDL statement uses ``IF NOT EXISTS``
    so calling it multiple times on the same database is safe.
    """
    conn.executescript(_read_schema())
    _ensure_version_table(conn)
    migrate(conn)


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the internal schema-version tracking table if absent."""
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version  INTEGER PRIMARY KEY,
                applied_at INTEGER DEFAULT (strftime('%s', 'now'))
            )
            """
        )


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 if none applied)."""
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) FROM schema_version"
    ).fetchone()
    return row[0] if row else 0


# Each migration is a tuple of ``(version, sql)``, applied in version order.
MIGRATIONS: list[tuple[int, str]] = [
    (1, "CREATE INDEX IF NOT EXISTS idx_crawl_jobs_status ON crawl_jobs (status, created_at DESC)"),
]


def migrate(conn: sqlite3.Connection) -> None:
    """Run any pending incremental migrations and record them."""
    applied = current_version(conn)
    for version, sql in MIGRATIONS:
        if version > applied:
            with conn:
                conn.execute(sql)
                conn.execute(
                    "INSERT INTO schema_version(version) VALUES (?)", (version,)
                )
