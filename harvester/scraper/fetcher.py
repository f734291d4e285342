"""Fetch client for the remote "URL -> clean text" extraction endpoint.

A single call is ``GET {reader_base_url}{url}`` with a JSON ``Accept``
header; the endpoint answers with ``{"data": {"title", "content"}}`` (or the
same keys at the top level).

Retry policy (``settings.fetch_max_retries`` retries beyond the first call):

- ``429``            → exponential backoff (2s, 4s, 8s … capped at 30s).
- timeout / network  → linear backoff (1s × attempt, capped at 5s).
- any other status   → permanent, raised immediately.
- unreadable reply   → permanent (bad encoding, redirect loop, non-JSON body).

Every call carries its own hard timeout, independent of backoff waits.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import httpx

from harvester.config import settings
from harvester.scraper.models import ExtractedPage

_DEFAULT_HEADERS = {
    "Accept": "application/json",
    "X-Return-Format": "markdown",
    "User-Agent": "Mozilla/5.0 (compatible; SiteHarvester/1.0)",
}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class FetchError(Exception):
    """Base class for every failure surfaced by the fetch client."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url


class RateLimitedError(FetchError):
    """The endpoint kept answering ``429`` until retries ran out."""


class FetchStatusError(FetchError):
    """A non-retryable HTTP status."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, f"HTTP {status_code}")
        self.status_code = status_code


class FetchTransportError(FetchError):
    """Timeouts or connection failures persisted through every retry."""


class MalformedResponseError(FetchError):
    """The response could not be read, or its body is not the expected JSON."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def reader_url(url: str) -> str:
    """Return the extraction-endpoint URL for *url*."""
    return f"{settings.reader_base_url}{url}"


def reader_headers() -> dict[str, str]:
    headers = dict(_DEFAULT_HEADERS)
    if settings.reader_api_key:
        headers["Authorization"] = f"Bearer {settings.reader_api_key}"
    return headers


def rate_limit_backoff(attempt: int) -> float:
    """Seconds to wait after the ``attempt``-th (0-based) ``429``."""
    return min(settings.rate_limit_backoff_base * (2 ** attempt), settings.rate_limit_backoff_cap)


def transport_backoff(attempt: int) -> float:
    """Seconds to wait after the ``attempt``-th (0-based) transport failure."""
    return min(settings.transport_backoff_step * (attempt + 1), settings.transport_backoff_cap)


def parse_reader_payload(url: str, payload: Any) -> ExtractedPage:
    """Pull ``title`` / ``content`` out of an extraction-endpoint response.

    The title falls back to the source URL when absent.

    Raises:
        MalformedResponseError: If *payload* is not a JSON object.
    """
    if not isinstance(payload, dict):
        raise MalformedResponseError(url, "Response body is not a JSON object")
    data = payload.get("data")
    if not isinstance(data, dict):
        data = {}
    content = data.get("content") or payload.get("content") or ""
    title = data.get("title") or payload.get("title") or url
    return ExtractedPage(url=url, title=str(title), content=str(content))


async def _backoff(seconds: float) -> None:
    await asyncio.sleep(seconds)


def _decode(url: str, response: httpx.Response) -> ExtractedPage:
    try:
        payload = response.json()
    except ValueError as exc:
        raise MalformedResponseError(url, "Response body is not valid JSON") from exc
    return parse_reader_payload(url, payload)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def fetch_page(
    client: httpx.AsyncClient,
    url: str,
    *,
    max_retries: Optional[int] = None,
    timeout: Optional[float] = None,
    on_rate_limit: Optional[Callable[[], None]] = None,
) -> ExtractedPage:
    """Fetch *url* through the extraction endpoint.

    Args:
        client: Shared async client (one per job).
        url: The page to extract.
        max_retries: Retries beyond the first call.  Defaults to
            ``settings.fetch_max_retries``.
        timeout: Hard per-call timeout in seconds.  Defaults to
            ``settings.page_timeout``.
        on_rate_limit: Invoked once for every ``429`` response so the caller
            can degrade its concurrency.

    Raises:
        RateLimitedError: ``429`` on every attempt.
        FetchStatusError: Any other non-2xx status (not retried).
        FetchTransportError: Timeouts or connection errors on every attempt.
        MalformedResponseError: 2xx with an unreadable body, or a response
            that cannot be read at all (bad encoding, redirect loop).
    """
    retries = settings.fetch_max_retries if max_retries is None else max_retries
    per_call_timeout = settings.page_timeout if timeout is None else timeout
    attempts = retries + 1
    last_error: Optional[FetchError] = None

    for attempt in range(attempts):
        try:
            response = await client.get(
                reader_url(url),
                headers=reader_headers(),
                timeout=per_call_timeout,
            )
        except httpx.TransportError as exc:
            last_error = FetchTransportError(url, f"{type(exc).__name__}: {exc}")
            if attempt < attempts - 1:
                await _backoff(transport_backoff(attempt))
            continue
        except httpx.HTTPError as exc:
            # Undecodable bodies, redirect loops and the like: not retried.
            raise MalformedResponseError(url, f"{type(exc).__name__}: {exc}") from exc

        if response.status_code == 429:
            if on_rate_limit is not None:
                on_rate_limit()
            last_error = RateLimitedError(url, "HTTP 429 rate limited")
            if attempt < attempts - 1:
                wait = rate_limit_backoff(attempt)
                print(f"[FETCH] Rate limited, waiting {wait:.0f}s ({attempt + 1}/{attempts})")
                await _backoff(wait)
            continue

        if response.is_error:
            raise FetchStatusError(url, response.status_code)

        return _decode(url, response)

    raise last_error or FetchError(url, "Max retries exceeded")
