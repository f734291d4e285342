"""Scraper package — extraction client, link discovery and classification."""

from harvester.scraper.classifier import classify_crawled_page, detect_content_type
from harvester.scraper.discovery import discover_links
from harvester.scraper.fetcher import FetchError, fetch_page
from harvester.scraper.models import DiscoveryResult, ExtractedPage, Item

__all__ = [
    "fetch_page",
    "discover_links",
    "classify_crawled_page",
    "detect_content_type",
    "FetchError",
    "ExtractedPage",
    "Item",
    "DiscoveryResult",
]
