"""Crawl commands: start jobs, poll them, browse history and export results."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from harvester.config import settings
from harvester.crawl.controller import (
    InvalidSeedUrlError,
    export_result,
    get_status,
    start_crawl,
    wait_for_job,
)
from harvester.db import get_connection, init_db
from harvester.db.jobs import list_jobs
from harvester.db.models import Job

from cli.rendering import render_history, render_job, render_progress

crawl_app = typer.Typer(help="Start and inspect background crawl jobs.", no_args_is_help=True)


def _echo_progress(progress: int, total: int) -> None:
    typer.echo(f"[crawl] {render_progress(progress, total)}")


def _wait(conn, job_id: str) -> Job:
    try:
        job = wait_for_job(conn, job_id, on_progress=_echo_progress)
    except TimeoutError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=1)
    typer.echo(render_job(job))
    if job.status == "failed":
        raise typer.Exit(code=1)
    return job


@crawl_app.command("run")
def crawl_run(
    url: str = typer.Argument(..., help="Seed site URL."),
) -> None:
    """Crawl a site and wait for the job to finish."""
    conn = get_connection()
    init_db(conn)
    try:
        try:
            job = start_crawl(conn, url)
        except InvalidSeedUrlError as exc:
            typer.echo(f"❌ {exc}")
            raise typer.Exit(code=1)
        typer.echo(f"[crawl run] Job {job.id} started — polling for status …")
        _wait(conn, job.id)
    finally:
        conn.close()


@crawl_app.command("wait")
def crawl_wait(
    job_id: str = typer.Argument(..., help="Job id."),
) -> None:
    """Poll an existing job until it reaches a terminal status."""
    conn = get_connection()
    init_db(conn)
    try:
        try:
            _wait(conn, job_id)
        except ValueError as exc:
            typer.echo(f"❌ {exc}")
            raise typer.Exit(code=1)
    finally:
        conn.close()


@crawl_app.command("status")
def crawl_status(
    job_id: str = typer.Argument(..., help="Job id."),
) -> None:
    """Show a job's current status and progress."""
    conn = get_connection()
    init_db(conn)
    job = get_status(conn, job_id)
    conn.close()
    if job is None:
        typer.echo(f"❌ Job not found: {job_id}")
        raise typer.Exit(code=1)
    typer.echo(render_job(job))


@crawl_app.command("history")
def crawl_history(
    limit: int = typer.Option(None, "--limit", "-n", help="Number of jobs to show."),
    status: Optional[str] = typer.Option(
        None, "--status", "-s", help="Only jobs in this status (processing, completed, partial, failed)."
    ),
) -> None:
    """List recent jobs, newest first."""
    conn = get_connection()
    init_db(conn)
    try:
        jobs = list_jobs(conn, limit=limit or settings.history_limit, status=status)
    except ValueError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=1)
    finally:
        conn.close()
    if not jobs:
        typer.echo("[crawl history] No jobs yet.")
        return
    typer.echo(render_history(jobs))


@crawl_app.command("export")
def crawl_export(
    job_id: str = typer.Argument(..., help="Job id."),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write JSON here instead of stdout."),
) -> None:
    """Export ``{site, items}`` of a job's result as JSON."""
    conn = get_connection()
    init_db(conn)
    job = get_status(conn, job_id)
    conn.close()
    if job is None:
        typer.echo(f"❌ Job not found: {job_id}")
        raise typer.Exit(code=1)
    if not job.result:
        typer.echo(f"❌ Job {job_id} has no result yet ({job.status}).")
        raise typer.Exit(code=1)

    payload = json.dumps(export_result(job), indent=2, ensure_ascii=False)
    if out is None:
        typer.echo(payload)
        return
    out.write_text(payload, encoding="utf-8")
    typer.echo(f"✅ Exported {len(job.result.get('items', []))} item(s) to {out}")
