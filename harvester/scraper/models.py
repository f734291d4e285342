"""Data models for the crawl pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, List, Optional


@dataclass
class ExtractedPage:
    """What the remote extraction endpoint returned for a single URL."""

    url: str
    title: str
    content: str


@dataclass(frozen=True)
class Item:
    """One accepted page in a job's result set.  ``source_url`` is its key."""

    title: str
    content: str
    content_type: str
    source_url: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DiscoveryResult:
    """Outcome of link discovery for a seed URL.

    ``seed_page`` is set whenever the main page was fetched during
    discovery, so the single-page fallback does not fetch it twice.
    """

    urls: List[str] = field(default_factory=list)
    strategy: str = "none"
    seed_page: Optional[ExtractedPage] = None

    @property
    def is_empty(self) -> bool:
        return not self.urls
