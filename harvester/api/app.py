"""FastAPI application factory.

Lifespan
--------
On startup the app opens a single SQLite connection (shared across all
requests via ``request.app.state.db``) and initialises the schema.  On
shutdown it closes the connection cleanly.  Background crawl workers open
their own connections to the same database file.

Routers
-------
    /crawl     — start jobs, poll status, history, export
    /classify  — standalone content-type classifier
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from harvester.db import get_connection, init_db

from harvester.api.routers import classify as classify_router
from harvester.api.routers import crawl as crawl_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the DB on startup and close it on shutdown."""
    conn = get_connection()
    init_db(conn)
    app.state.db = conn
    try:
        yield
    finally:
        conn.close()


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="Site Harvester API",
        description=(
            "Start background website crawls, poll their progress and "
            "download the extracted items."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(crawl_router.router, prefix="/crawl", tags=["crawl"])
    app.include_router(classify_router.router, prefix="/classify", tags=["classify"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn harvester.api.app:app --reload
app = create_app()
