"""Crawl package — job controller and adaptive batch scheduler."""

from harvester.crawl.controller import (
    InvalidSeedUrlError,
    crawl_job,
    get_status,
    start_crawl,
    wait_for_job,
)
from harvester.crawl.scheduler import CrawlScheduler, CrawlState

__all__ = [
    "start_crawl",
    "get_status",
    "wait_for_job",
    "crawl_job",
    "InvalidSeedUrlError",
    "CrawlScheduler",
    "CrawlState",
]
