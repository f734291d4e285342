"""Utilities for rendering crawl jobs in the CLI."""

from __future__ import annotations

from datetime import datetime
from typing import List

from harvester.db.models import Job

_STATUS_ICONS = {
    "processing": "⏳",
    "completed": "✅",
    "partial": "⚠️",
    "failed": "❌",
}


def _get_icon(status: str) -> str:
    return _STATUS_ICONS.get(status, "•")


def render_progress(progress: int, total: int, width: int = 30) -> str:
    """Render ``progress/total`` as a fixed-width ASCII bar."""
    if total <= 0:
        return f"[{'.' * width}] 0/0"
    filled = min(width, int(width * progress / total))
    return f"[{'#' * filled}{'.' * (width - filled)}] {progress}/{total}"


def render_job(job: Job) -> str:
    """Render a one-job summary block."""
    lines = [
        f"{_get_icon(job.status)} {job.id}  [{job.status}]",
        f"   Site     : {job.url}",
        f"   Progress : {render_progress(job.progress, job.total)}",
    ]
    if job.result:
        scraped = job.result.get("scraped", len(job.result.get("items", [])))
        lines.append(f"   Items    : {scraped}")
    if job.status == "partial" and job.result:
        lines.append(
            f"   Scrape partially completed: {job.result.get('scraped', 0)}/"
            f"{job.result.get('total', job.total)} pages"
        )
    if job.error:
        lines.append(f"   Error    : {job.error}")
    return "\n".join(lines)


def render_history(jobs: List[Job]) -> str:
    """Render recent jobs as one line each, newest first."""
    lines = []
    for job in jobs:
        created = datetime.fromtimestamp(job.created_at).strftime("%Y-%m-%d %H:%M")
        scraped = (job.result or {}).get("scraped", 0)
        lines.append(
            f"{_get_icon(job.status)} {job.id[:8]}  {created}  "
            f"{job.status:<10}  {scraped:>4} item(s)  {job.url}"
        )
    return "\n".join(lines)
