"""Dataclass models representing DB rows.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_PARTIAL, STATUS_FAILED})
JOB_STATUSES = frozenset({STATUS_PROCESSING}) | TERMINAL_STATUSES


@dataclass
class Job:
    id: str
    url: str
    status: str
    progress: int
    total: int
    result: Optional[dict[str, Any]]
    error: Optional[str]
    created_at: float
    updated_at: float

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        """Return the full job record as a JSON-serialisable dict."""
        return asdict(self)
