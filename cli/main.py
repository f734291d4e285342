"""Site Harvester CLI — entry-point for all backend operations.

Usage:
    python cli/main.py --help

Command groups:
    db        → job store maintenance
    crawl     → start / poll / export crawl jobs
    discover  → run link discovery alone
    classify  → standalone content-type classifier
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from harvester.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio

import httpx
import typer

from harvester.config import settings
from harvester.db import get_connection, init_db
from harvester.scraper.classifier import detect_content_type
from harvester.scraper.discovery import discover_links
from harvester.scraper.fetcher import FetchError

from cli.commands.crawl import crawl_app

app = typer.Typer(
    name="harvester",
    help="Site Harvester CLI.",
    no_args_is_help=True,
)

# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Job store operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")
app.add_typer(crawl_app, name="crawl")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite job store (create tables if they do not exist)."""
    conn = get_connection()
    init_db(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


# ---------------------------------------------------------------------------
# Discovery / classification
# ---------------------------------------------------------------------------
async def _discover(url: str):
    async with httpx.AsyncClient(follow_redirects=True) as client:
        return await discover_links(client, url)


@app.command("discover")
def discover(
    url: str = typer.Argument(..., help="Seed site URL."),
) -> None:
    """Run link discovery for a site and print the candidate URLs."""
    typer.echo(f"[discover] Discovering links for {url!r} …")
    try:
        result = asyncio.run(_discover(url))
    except FetchError as exc:
        typer.echo(f"❌ Main page could not be fetched: {exc}")
        raise typer.Exit(code=1)

    if result.is_empty:
        typer.echo("[discover] No links found; a crawl would scrape the seed page alone.")
        return
    typer.echo(f"[discover] {len(result.urls)} URL(s) via {result.strategy!r}:")
    for link in result.urls:
        typer.echo(f"  {link}")


@app.command("classify")
def classify(
    url: str = typer.Option(..., help="Page URL."),
    title: str = typer.Option("", help="Page title."),
    content_file: Path = typer.Option(
        None, "--content-file", help="File holding the page body (markdown/text)."
    ),
) -> None:
    """Label a page with the standalone content-type classifier."""
    content = content_file.read_text(encoding="utf-8") if content_file else ""
    typer.echo(detect_content_type(url, title, content))


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
