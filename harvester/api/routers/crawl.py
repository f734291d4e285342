"""Crawl job endpoints.

Routes
------
POST /crawl               Body: {"url": "https://..."}  → {"job_id": ...} (202)
GET  /crawl               Recent jobs, newest first (?limit=, ?status=)
GET  /crawl/{id}          Full job record (poll this)
GET  /crawl/{id}/export   {"site", "items"} of the job's result
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, HttpUrl

from harvester.config import settings
from harvester.crawl.controller import (
    InvalidSeedUrlError,
    export_result,
    get_status,
    start_crawl,
)
from harvester.db.jobs import list_jobs
from harvester.db.models import Job

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class CrawlRequest(BaseModel):
    url: HttpUrl


class CrawlStarted(BaseModel):
    job_id: str
    status: str
    message: str


class ItemOut(BaseModel):
    title: str
    content: str
    content_type: str
    source_url: str


class ResultOut(BaseModel):
    site: str
    items: list[ItemOut]
    scraped: int
    total: Optional[int] = None


class JobOut(BaseModel):
    id: str
    url: str
    status: str
    progress: int
    total: int
    result: Optional[ResultOut] = None
    error: Optional[str] = None
    created_at: float
    updated_at: float


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _require_job(request: Request, job_id: str) -> Job:
    job = get_status(request.app.state.db, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", response_model=CrawlStarted, status_code=202)
def start_crawl_endpoint(body: CrawlRequest, request: Request) -> dict[str, Any]:
    """Create a crawl job and return its id; crawling continues in the background."""
    try:
        job = start_crawl(request.app.state.db, str(body.url))
    except InvalidSeedUrlError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {
        "job_id": job.id,
        "status": job.status,
        "message": "Scraping started in background",
    }


@router.get("", response_model=list[JobOut])
def list_crawls(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    status: Optional[str] = Query(default=None),
) -> list[dict[str, Any]]:
    """Return the most recent jobs, newest first, optionally filtered by status."""
    try:
        jobs = list_jobs(
            request.app.state.db, limit=limit or settings.history_limit, status=status
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return [job.to_dict() for job in jobs]


@router.get("/{job_id}", response_model=JobOut)
def get_crawl(job_id: str, request: Request) -> dict[str, Any]:
    """Return the full job record, including partial results mid-run."""
    return _require_job(request, job_id).to_dict()


@router.get("/{job_id}/export")
def export_crawl(job_id: str, request: Request) -> dict[str, Any]:
    """Return ``{site, items}`` for a job that has produced a result."""
    job = _require_job(request, job_id)
    if not job.result:
        raise HTTPException(status_code=409, detail="Job has no result yet")
    return export_result(job)
