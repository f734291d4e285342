"""CRUD operations for the ``crawl_jobs`` table.

The store is last-write-wins per row: checkpoints and terminal writes are
plain ``UPDATE`` statements.  The only rule enforced here is that a job's
status never leaves a terminal state.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from time import time
from typing import Any, Optional

from harvester.db.models import JOB_STATUSES, STATUS_PROCESSING, Job


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _row_to_job(row: sqlite3.Row) -> Job:
    return Job(
        id=row["id"],
        url=row["url"],
        status=row["status"],
        progress=row["progress"],
        total=row["total"],
        result=json.loads(row["result"]) if row["result"] else None,
        error=row["error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


_UPDATABLE = {"status", "progress", "total", "result", "error"}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def create_job(
    conn: sqlite3.Connection,
    url: str,
    job_id: Optional[str] = None,
) -> Job:
    """Insert a new job in ``processing`` state and return it.

    Args:
        conn: Open DB connection.
        url: The seed site URL.  Immutable after creation.
        job_id: Explicit UUID override (auto-generated when omitted).
    """
    jid = job_id or str(uuid.uuid4())
    now = time()

    with conn:
        conn.execute(
            """
            INSERT INTO crawl_jobs (id, url, status, progress, total, created_at, updated_at)
            VALUES (?, ?, ?, 0, 0, ?, ?)
            """,
            (jid, url, STATUS_PROCESSING, now, now),
        )

    return get_job(conn, jid)  # type: ignore[return-value]


def get_job(conn: sqlite3.Connection, job_id: str) -> Optional[Job]:
    """Fetch a single job by its UUID.  Returns ``None`` if not found."""
    row = conn.execute(
        "SELECT * FROM crawl_jobs WHERE id = ?", (job_id,)
    ).fetchone()
    return _row_to_job(row) if row else None


def update_job(conn: sqlite3.Connection, job_id: str, **kwargs: Any) -> Job:
    """Update one or more fields on a job.

    Allowed keyword arguments: ``status``, ``progress``, ``total``,
    ``result`` (dict, stored as JSON) and ``error``.  ``updated_at`` is always
    refreshed automatically.

    Raises:
        ValueError: If the job does not exist, a field is not updatable, the
            status is unknown, or the update would move the job out of a
            terminal status.
    """
    job = get_job(conn, job_id)
    if job is None:
        raise ValueError(f"Job not found: {job_id!r}")

    updates: dict[str, Any] = {}
    for key, value in kwargs.items():
        if key not in _UPDATABLE:
            raise ValueError(f"Cannot update field {key!r}")
        if key == "result":
            updates["result"] = json.dumps(value) if value is not None else None
        else:
            updates[key] = value

    if not updates:
        raise ValueError("No valid fields provided to update_job()")

    status = updates.get("status")
    if status is not None:
        if status not in JOB_STATUSES:
            raise ValueError(f"Unknown job status {status!r}")
        if job.is_terminal and status != job.status:
            raise ValueError(
                f"Job {job_id!r} is already {job.status!r}; cannot move to {status!r}"
            )

    updates["updated_at"] = time()
    set_clause = ", ".join(f"{col} = ?" for col in updates)
    values = list(updates.values()) + [job_id]

    with conn:
        conn.execute(
            f"UPDATE crawl_jobs SET {set_clause} WHERE id = ?", values  # noqa: S608
        )

    return get_job(conn, job_id)  # type: ignore[return-value]


def list_jobs(
    conn: sqlite3.Connection,
    limit: int = 20,
    status: Optional[str] = None,
) -> list[Job]:
    """Return the most recent jobs, newest first, optionally of one *status*.

    Raises:
        ValueError: If *status* is not a known job status.
    """
    if status is None:
        rows = conn.execute(
            "SELECT * FROM crawl_jobs ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
    else:
        if status not in JOB_STATUSES:
            raise ValueError(f"Unknown status: {status!r}")
        rows = conn.execute(
            "SELECT * FROM crawl_jobs WHERE status = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (status, limit),
        ).fetchall()
    return [_row_to_job(r) for r in rows]
