"""Job controller — owns the lifecycle of a crawl job.

``start_crawl`` validates the seed, inserts a ``processing`` row and hands
the run to a background worker pool; it returns immediately.  The worker
(``run_crawl_job``) opens its own DB connection and drives
:func:`crawl_job`, which:

    discover → publish total → schedule batches → resolve terminal status

while a checkpoint task writes the accumulated items to the row every
``settings.checkpoint_interval`` seconds.  The job row is the only channel
back to observers, who poll it with :func:`get_status` / :func:`wait_for_job`.

Terminal status rules:

- discovery found nothing      → seed page alone, ``completed`` (1/1)
- URL set exhausted            → ``completed`` if items ≥ ratio × total,
                                  else ``partial``
- time budget hit              → ``partial``
- unexpected exception         → ``partial`` with items, else ``failed``
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional
from urllib.parse import urlparse

import httpx

from harvester.config import settings
from harvester.crawl.scheduler import CrawlScheduler, CrawlState, accept_page
from harvester.db import get_connection, init_db
from harvester.db.jobs import create_job, get_job, update_job
from harvester.db.models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PARTIAL,
    Job,
)
from harvester.scraper.classifier import classify_crawled_page
from harvester.scraper.discovery import discover_links
from harvester.scraper.fetcher import fetch_page
from harvester.scraper.models import ExtractedPage, Item

# Background runs are mostly waiting on the network; the pool size bounds
# how many jobs crawl at the same time.
_executor = ThreadPoolExecutor(
    max_workers=settings.crawl_workers, thread_name_prefix="crawl"
)


class InvalidSeedUrlError(ValueError):
    """The seed URL is missing or not an absolute http(s) URL."""


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def validate_seed_url(url: Optional[str]) -> str:
    """Return the trimmed seed URL or raise :class:`InvalidSeedUrlError`."""
    if not url or not url.strip():
        raise InvalidSeedUrlError("URL is required")
    seed = url.strip()
    parsed = urlparse(seed)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidSeedUrlError(f"Not an absolute http(s) URL: {seed!r}")
    return seed


def build_result(site: str, items: list[Item], total: int) -> dict[str, Any]:
    """Return the ``result`` payload stored on the job row."""
    return {
        "site": site,
        "items": [item.to_dict() for item in items],
        "scraped": len(items),
        "total": total,
    }


def resolve_status(
    scraped: int,
    total: int,
    timed_out: bool,
    ratio: Optional[float] = None,
) -> str:
    """Terminal status for a run that reached the end of its batch loop."""
    if timed_out:
        return STATUS_PARTIAL
    threshold = settings.completion_ratio if ratio is None else ratio
    return STATUS_COMPLETED if scraped >= total * threshold else STATUS_PARTIAL


def export_result(job: Job) -> dict[str, Any]:
    """Return the ``{site, items}`` export of a job's result."""
    result = job.result or {}
    return {"site": result.get("site", job.url), "items": result.get("items", [])}


# ---------------------------------------------------------------------------
# The run itself
# ---------------------------------------------------------------------------

async def _checkpoint_loop(
    conn: sqlite3.Connection, job_id: str, url: str, state: CrawlState
) -> None:
    """Write accumulated items to the job row every checkpoint interval."""
    while True:
        await asyncio.sleep(settings.checkpoint_interval)
        if not state.items:
            continue
        try:
            update_job(conn, job_id, result=build_result(url, state.items, state.total))
            print(f"[JOB] Auto-saved {len(state.items)} item(s)")
        except sqlite3.Error as exc:
            # The next tick (or the terminal write) supersedes this one.
            print(f"[JOB] ✗ Checkpoint failed for {job_id}: {exc}")


def _seed_page_fields(url: str, page: Optional[ExtractedPage], state: CrawlState) -> dict[str, Any]:
    """Terminal fields when discovery found nothing and the seed is the only page."""
    state.total = 1
    state.attempted = 1
    item = accept_page(url, page) if page is not None else None
    if item is None:
        return {
            "status": STATUS_FAILED,
            "progress": 1,
            "total": 1,
            "error": f"No extractable content found at {url}",
        }
    state.add_item(item)
    return {
        "status": STATUS_COMPLETED,
        "progress": 1,
        "total": 1,
        "result": build_result(url, state.items, 1),
    }


async def _crawl(
    conn: sqlite3.Connection,
    job_id: str,
    url: str,
    client: httpx.AsyncClient,
    state: CrawlState,
    started_at: float,
    clock: Callable[[], float],
) -> dict[str, Any]:
    discovery = await discover_links(client, url)
    if discovery.is_empty:
        print("[JOB] No links discovered; scraping the seed page alone")
        return _seed_page_fields(url, discovery.seed_page, state)

    state.total = len(discovery.urls)
    update_job(conn, job_id, total=state.total)
    print(f"[JOB] Scraping {state.total} URL(s) via {discovery.strategy!r} discovery …")

    async def fetch(page_url: str, on_rate_limit: Callable[[], None]) -> ExtractedPage:
        return await fetch_page(client, page_url, on_rate_limit=on_rate_limit)

    def report(st: CrawlState) -> None:
        update_job(conn, job_id, progress=st.attempted)

    scheduler = CrawlScheduler(
        fetch,
        started_at=started_at,
        on_progress=report,
        clock=clock,
        classify=classify_crawled_page,
    )
    await scheduler.run(discovery.urls, state)

    return {
        "status": resolve_status(len(state.items), state.total, state.timed_out),
        "progress": state.attempted,
        "total": state.total,
        "result": build_result(url, state.items, state.total),
    }


def _failure_fields(url: str, state: CrawlState, exc: BaseException) -> dict[str, Any]:
    if state.items:
        return {
            "status": STATUS_PARTIAL,
            "progress": state.attempted,
            "result": build_result(url, state.items, state.total),
        }
    return {"status": STATUS_FAILED, "error": str(exc) or type(exc).__name__}


async def crawl_job(
    conn: sqlite3.Connection,
    job_id: str,
    url: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], float] = time.monotonic,
) -> Job:
    """Run one crawl job to its terminal status and return the final row.

    Exactly one terminal write is made.  Any exception raised by discovery,
    scheduling or a progress write resolves to ``partial`` / ``failed``
    instead of leaving the row in ``processing``.
    """
    started_at = clock()
    state = CrawlState.from_settings()
    owns_client = client is None
    http = client or httpx.AsyncClient(follow_redirects=True)
    checkpointer = asyncio.create_task(_checkpoint_loop(conn, job_id, url, state))

    try:
        fields = await _crawl(conn, job_id, url, http, state, started_at, clock)
    except Exception as exc:  # noqa: BLE001
        print(f"[JOB] ✗ Error in background scrape of {url}: {exc}")
        fields = _failure_fields(url, state, exc)
    finally:
        checkpointer.cancel()
        try:
            await checkpointer
        except asyncio.CancelledError:
            pass
        if owns_client:
            await http.aclose()

    job = update_job(conn, job_id, **fields)
    scraped = len(state.items)
    print(f"[JOB] ✅ Final status saved: {job.status} - {scraped}/{state.total} page(s)")
    return job


def run_crawl_job(job_id: str, url: str, db_path: Optional[str] = None) -> None:
    """Worker-pool entry point: own a DB connection and run the job to the end."""
    conn = get_connection(db_path)  # type: ignore[arg-type]
    init_db(conn)
    try:
        asyncio.run(crawl_job(conn, job_id, url))
    except Exception as exc:  # noqa: BLE001
        # Only reachable when the terminal write itself failed.
        print(f"[JOB] ✗ Job {job_id} crashed: {exc}")
        _mark_failed(conn, job_id, exc)
    finally:
        conn.close()


def _mark_failed(conn: sqlite3.Connection, job_id: str, exc: BaseException) -> None:
    try:
        job = get_job(conn, job_id)
        if job is not None and not job.is_terminal:
            update_job(conn, job_id, status=STATUS_FAILED, error=str(exc))
    except sqlite3.Error as store_exc:
        print(f"[JOB] ✗ Could not record failure for {job_id}: {store_exc}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def start_crawl(
    conn: sqlite3.Connection,
    url: Optional[str],
    *,
    submit: Optional[Callable[..., Future]] = None,
) -> Job:
    """Create a job for *url* and start crawling it in the background.

    Args:
        conn: Open, initialised DB connection.
        url: Seed site URL.
        submit: Executor ``submit`` override (defaults to the module pool).

    Returns:
        The freshly inserted ``processing`` job.

    Raises:
        InvalidSeedUrlError: Before any row is created.
    """
    seed = validate_seed_url(url)
    job = create_job(conn, seed)
    print(f"[JOB] Created job {job.id} for {seed}")
    (submit or _executor.submit)(run_crawl_job, job.id, seed)
    return job


def get_status(conn: sqlite3.Connection, job_id: str) -> Optional[Job]:
    """Return the full job record, or ``None`` if the job does not exist."""
    return get_job(conn, job_id)


def wait_for_job(
    conn: sqlite3.Connection,
    job_id: str,
    *,
    on_progress: Optional[Callable[[int, int], None]] = None,
    interval: Optional[float] = None,
    max_attempts: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Job:
    """Poll the store until *job_id* reaches a terminal status.

    Raises:
        ValueError: If the job does not exist.
        TimeoutError: If the job is still processing after ``max_attempts``
            polls.
    """
    delay = settings.poll_interval if interval is None else interval
    attempts = settings.poll_max_attempts if max_attempts is None else max_attempts

    for _ in range(attempts):
        job = get_job(conn, job_id)
        if job is None:
            raise ValueError(f"Job not found: {job_id!r}")
        if on_progress is not None and job.total > 0:
            on_progress(job.progress, job.total)
        if job.is_terminal:
            return job
        sleep(delay)

    raise TimeoutError(f"Job {job_id} is still processing after {attempts} polls")
