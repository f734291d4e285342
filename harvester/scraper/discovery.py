"""Link discovery: find candidate content URLs for a seed site.

Strategies, tried in priority order:

1. **Feeds** — probe conventional RSS / Atom / sitemap paths on the seed's
   origin.  The first feed yielding same-host URLs short-circuits discovery.
2. **Common paths** — ask the extraction endpoint for conventional content
   sections (``/blog``, ``/articles`` …) and harvest their links.
3. **Main page** — extract the seed page itself and harvest its links.

Results of 2 and 3 are unioned.  Every strategy's output goes through the
same navigation filter.  An empty result tells the caller to fall back to
the seed page as the only item.
"""

from __future__ import annotations

import asyncio
import re
from typing import Iterable, List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

import httpx

from harvester.config import settings
from harvester.scraper.fetcher import (
    FetchError,
    fetch_page,
    parse_reader_payload,
    reader_headers,
    reader_url,
)
from harvester.scraper.models import DiscoveryResult

FEED_PATHS = [
    "/feed",
    "/feed.xml",
    "/rss",
    "/rss.xml",
    "/atom.xml",
    "/sitemap.xml",
    "/blog/feed",
    "/blog/rss",
]

COMMON_PATHS = ["/blog", "/articles", "/posts", "/learn", "/guides", "/resources", "/news"]

NAV_PATTERNS = [
    "/signup", "/login", "/logout", "/signin", "/register",
    "/about", "/contact", "/privacy", "/terms", "/faq",
    "/pricing", "/features", "/careers", "/jobs",
    "/support", "/help", "/demo", "/account", "/settings",
]

_FEED_MARKERS = ("<rss", "<feed", "<urlset")

_LOC_RE = re.compile(r"<loc>\s*([^<]+?)\s*</loc>", re.IGNORECASE)
_LINK_TEXT_RE = re.compile(r"<link>\s*([^<]+?)\s*</link>", re.IGNORECASE)
_LINK_HREF_RE = re.compile(r"<link\b[^>]*\bhref=[\"']([^\"']+)[\"']", re.IGNORECASE)

_MARKDOWN_LINK_RE = re.compile(r"\[([^\]]*)\]\(\s*([^)\s]+)(?:\s+\"[^\"]*\")?\s*\)")
_BARE_URL_RE = re.compile(r"https?://[^\s)\]\"'<>]+")

_ASSET_RE = re.compile(r"\.(svg|png|jpe?g|gif|webp|ico|css|js)$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def _host(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def normalize_url(url: str) -> str:
    """Canonical form used as the dedup key: trimmed, fragment removed."""
    return urldefrag(url.strip())[0]


def _is_asset(url: str) -> bool:
    return bool(_ASSET_RE.search(urlparse(url).path))


def _same_host_http(url: str, seed_url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and _host(url) == _host(seed_url)


def is_feed(body: str) -> bool:
    """Return ``True`` if *body* carries an RSS, Atom or sitemap root marker."""
    lowered = body.lower()
    return any(marker in lowered for marker in _FEED_MARKERS)


def extract_feed_urls(xml: str, seed_url: str) -> List[str]:
    """Return same-host ``<loc>`` / ``<link>`` URLs from a feed or sitemap."""
    found: list[str] = []
    for pattern in (_LOC_RE, _LINK_TEXT_RE, _LINK_HREF_RE):
        for match in pattern.finditer(xml):
            url = normalize_url(match.group(1))
            # Sub-sitemaps and self links point at XML, not content.
            if url.lower().endswith(".xml"):
                continue
            if url and _same_host_http(url, seed_url):
                found.append(url)
    return _dedupe(found)


def extract_markdown_links(
    markdown: str, seed_url: str, page_url: Optional[str] = None
) -> List[str]:
    """Return same-host targets of ``[label](url)`` links in *markdown*.

    Relative targets resolve against *page_url* (the seed when omitted).
    Asset files and the seed's own path are excluded.
    """
    base = page_url or seed_url
    seed_path = urlparse(seed_url).path or "/"
    found: list[str] = []
    for match in _MARKDOWN_LINK_RE.finditer(markdown):
        url = normalize_url(urljoin(base, match.group(2)))
        if not _same_host_http(url, seed_url) or _is_asset(url):
            continue
        if (urlparse(url).path or "/") == seed_path:
            continue
        found.append(url)
    return _dedupe(found)


def extract_bare_urls(markdown: str, seed_url: str) -> List[str]:
    """Return same-host absolute URLs appearing as plain text in *markdown*."""
    seed_path = urlparse(seed_url).path or "/"
    found: list[str] = []
    for match in _BARE_URL_RE.finditer(markdown):
        url = normalize_url(match.group(0).rstrip(".,;:!?"))
        if not _same_host_http(url, seed_url) or _is_asset(url):
            continue
        if (urlparse(url).path or "/") == seed_path:
            continue
        found.append(url)
    return _dedupe(found)


def filter_navigation(urls: Iterable[str]) -> List[str]:
    """Drop login / pricing / legal style URLs; keep everything else."""
    kept = []
    for url in urls:
        lowered = url.lower()
        if any(pattern in lowered for pattern in NAV_PATTERNS):
            continue
        kept.append(url)
    return kept


def extract_links(
    markdown: str, seed_url: str, page_url: Optional[str] = None
) -> List[str]:
    """Union of both extraction passes, deduplicated and navigation-filtered."""
    links = extract_markdown_links(markdown, seed_url, page_url)
    links += extract_bare_urls(markdown, seed_url)
    return filter_navigation(_dedupe(links))


def _dedupe(urls: Iterable[str]) -> List[str]:
    """Deduplicate while preserving first-seen order."""
    return list(dict.fromkeys(urls))


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

async def discover_feed(client: httpx.AsyncClient, seed_url: str) -> List[str]:
    """Probe :data:`FEED_PATHS`; return URLs from the first productive feed."""
    for path in FEED_PATHS:
        feed_url = urljoin(seed_url, path)
        try:
            response = await client.get(
                feed_url, timeout=settings.probe_timeout, follow_redirects=True
            )
        except httpx.HTTPError as exc:
            print(f"[DISCOVERY] Feed probe failed {feed_url}: {exc}")
            continue
        if response.is_error or not is_feed(response.text):
            continue

        urls = filter_navigation(extract_feed_urls(response.text, seed_url))
        if urls:
            print(f"[DISCOVERY] Found feed at {feed_url} ({len(urls)} URL(s))")
            return urls
    return []


async def discover_common_paths(client: httpx.AsyncClient, seed_url: str) -> List[str]:
    """Harvest links from conventional content sections via the extraction endpoint."""
    discovered: list[str] = []
    for path in COMMON_PATHS:
        section_url = urljoin(seed_url, path)
        try:
            response = await client.get(
                reader_url(section_url),
                headers=reader_headers(),
                timeout=settings.probe_timeout,
            )
            if response.is_success:
                page = parse_reader_payload(section_url, response.json())
                discovered.extend(extract_links(page.content, seed_url, section_url))
        except (httpx.HTTPError, ValueError, FetchError) as exc:
            print(f"[DISCOVERY] Section probe failed {section_url}: {exc}")
        await asyncio.sleep(settings.probe_delay)
    return _dedupe(discovered)


async def discover_links(client: httpx.AsyncClient, seed_url: str) -> DiscoveryResult:
    """Run the discovery strategies for *seed_url*.

    Raises:
        FetchError: If the main page cannot be fetched.  Feed and section
            misses are not errors.
    """
    print("[DISCOVERY] Attempting RSS/Sitemap discovery …")
    feed_urls = await discover_feed(client, seed_url)
    if feed_urls:
        return DiscoveryResult(urls=feed_urls, strategy="feed")

    print("[DISCOVERY] No feed found, trying common paths …")
    section_urls = await discover_common_paths(client, seed_url)
    print(f"[DISCOVERY] Found {len(section_urls)} URL(s) from common paths")

    print("[DISCOVERY] Extracting links from main page …")
    seed_page = await fetch_page(client, seed_url)
    page_urls = extract_links(seed_page.content, seed_url)
    print(f"[DISCOVERY] Found {len(page_urls)} link(s) on main page")

    urls = _dedupe(section_urls + page_urls)
    print(f"[DISCOVERY] Total unique URLs discovered: {len(urls)}")
    return DiscoveryResult(
        urls=urls,
        strategy="links" if urls else "none",
        seed_page=seed_page,
    )
