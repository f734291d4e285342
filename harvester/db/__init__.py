"""Database layer package — the crawl job store.

Public re-exports so callers can write::

    from harvester.db import get_connection, init_db
    from harvester.db import jobs
"""

from harvester.db.connection import get_connection
from harvester.db.migrations import init_db
from harvester.db import jobs

__all__ = ["get_connection", "init_db", "jobs"]
