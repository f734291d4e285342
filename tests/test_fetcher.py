"""Tests for the extraction-endpoint fetch client.

Mocking strategy:
- ``respx`` patches ``httpx`` at the transport layer; the reader endpoint is
  pointed at ``https://reader.test/`` and routed by host.
- the fetcher's ``_backoff`` wait is replaced with an ``AsyncMock`` so
  backoff waits are recorded instead of slept.
"""

from __future__ import annotations

from typing import Iterator
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from harvester.config import settings
from harvester.scraper.fetcher import (
    FetchStatusError,
    FetchTransportError,
    MalformedResponseError,
    RateLimitedError,
    fetch_page,
    parse_reader_payload,
    rate_limit_backoff,
    reader_url,
    transport_backoff,
)
from harvester.scraper.models import ExtractedPage

PAGE = "https://example.com/post/1"


def _ok(title: str = "Post 1", content: str = "Body text") -> httpx.Response:
    return httpx.Response(200, json={"code": 200, "data": {"title": title, "content": content}})


@pytest.fixture(autouse=True)
def _reader(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "reader_base_url", "https://reader.test/")
    monkeypatch.setattr(settings, "reader_api_key", "")
    monkeypatch.setattr(settings, "fetch_max_retries", 2)


@pytest.fixture()
def sleep() -> Iterator[AsyncMock]:
    with patch("harvester.scraper.fetcher._backoff", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_reader_url_appends_page(self) -> None:
        assert reader_url(PAGE) == "https://reader.test/https://example.com/post/1"

    def test_rate_limit_backoff_doubles_and_caps(self) -> None:
        assert [rate_limit_backoff(a) for a in range(6)] == [2, 4, 8, 16, 30, 30]

    def test_transport_backoff_is_linear_and_capped(self) -> None:
        assert [transport_backoff(a) for a in range(7)] == [1, 2, 3, 4, 5, 5, 5]

    def test_parse_nested_payload(self) -> None:
        page = parse_reader_payload(PAGE, {"data": {"title": "T", "content": "C"}})
        assert page == ExtractedPage(url=PAGE, title="T", content="C")

    def test_parse_flat_payload(self) -> None:
        page = parse_reader_payload(PAGE, {"title": "T", "content": "C"})
        assert page.title == "T"
        assert page.content == "C"

    def test_title_falls_back_to_url(self) -> None:
        page = parse_reader_payload(PAGE, {"data": {"content": "C"}})
        assert page.title == PAGE

    def test_non_object_payload_is_malformed(self) -> None:
        with pytest.raises(MalformedResponseError):
            parse_reader_payload(PAGE, ["not", "an", "object"])


# ---------------------------------------------------------------------------
# fetch_page
# ---------------------------------------------------------------------------

class TestFetchPage:
    @respx.mock
    async def test_success(self, sleep: AsyncMock) -> None:
        route = respx.get(host="reader.test").mock(return_value=_ok())
        async with httpx.AsyncClient() as client:
            page = await fetch_page(client, PAGE)

        assert page.title == "Post 1"
        assert page.content == "Body text"
        assert route.call_count == 1
        assert route.calls.last.request.headers["Accept"] == "application/json"
        sleep.assert_not_awaited()

    @respx.mock
    async def test_api_key_sent_as_bearer(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "reader_api_key", "secret")
        route = respx.get(host="reader.test").mock(return_value=_ok())
        async with httpx.AsyncClient() as client:
            await fetch_page(client, PAGE)
        assert route.calls.last.request.headers["Authorization"] == "Bearer secret"

    @respx.mock
    async def test_429_backs_off_then_succeeds(self, sleep: AsyncMock) -> None:
        route = respx.get(host="reader.test").mock(
            side_effect=[httpx.Response(429), httpx.Response(429), _ok()]
        )
        hits: list[int] = []
        async with httpx.AsyncClient() as client:
            page = await fetch_page(client, PAGE, on_rate_limit=lambda: hits.append(1))

        assert page.title == "Post 1"
        assert route.call_count == 3
        assert len(hits) == 2
        assert [c.args[0] for c in sleep.await_args_list] == [2, 4]

    @respx.mock
    async def test_429_exhausts_retries(self, sleep: AsyncMock) -> None:
        route = respx.get(host="reader.test").mock(return_value=httpx.Response(429))
        hits: list[int] = []
        async with httpx.AsyncClient() as client:
            with pytest.raises(RateLimitedError):
                await fetch_page(client, PAGE, on_rate_limit=lambda: hits.append(1))

        # 2 retries beyond the first call; no wait after the last one.
        assert route.call_count == 3
        assert len(hits) == 3
        assert sleep.await_count == 2

    @respx.mock
    async def test_transport_error_retries_linearly(self, sleep: AsyncMock) -> None:
        route = respx.get(host="reader.test").mock(
            side_effect=[httpx.ConnectTimeout("slow"), httpx.ConnectError("reset"), _ok()]
        )
        async with httpx.AsyncClient() as client:
            page = await fetch_page(client, PAGE)

        assert page.content == "Body text"
        assert route.call_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1, 2]

    @respx.mock
    async def test_transport_error_exhausts_retries(self, sleep: AsyncMock) -> None:
        respx.get(host="reader.test").mock(side_effect=httpx.ReadTimeout("slow"))
        async with httpx.AsyncClient() as client:
            with pytest.raises(FetchTransportError, match="ReadTimeout"):
                await fetch_page(client, PAGE)

    @respx.mock
    async def test_other_status_is_permanent(self, sleep: AsyncMock) -> None:
        route = respx.get(host="reader.test").mock(return_value=httpx.Response(404))
        async with httpx.AsyncClient() as client:
            with pytest.raises(FetchStatusError) as info:
                await fetch_page(client, PAGE)

        assert info.value.status_code == 404
        assert route.call_count == 1
        sleep.assert_not_awaited()

    @respx.mock
    async def test_invalid_json_is_malformed(self, sleep: AsyncMock) -> None:
        respx.get(host="reader.test").mock(return_value=httpx.Response(200, text="<html>"))
        async with httpx.AsyncClient() as client:
            with pytest.raises(MalformedResponseError):
                await fetch_page(client, PAGE)

    @respx.mock
    async def test_zero_retries_makes_one_call(self, sleep: AsyncMock) -> None:
        route = respx.get(host="reader.test").mock(return_value=httpx.Response(429))
        async with httpx.AsyncClient() as client:
            with pytest.raises(RateLimitedError):
                await fetch_page(client, PAGE, max_retries=0)
        assert route.call_count == 1

    @pytest.mark.parametrize(
        "exc",
        [httpx.DecodingError("bad gzip"), httpx.TooManyRedirects("loop")],
        ids=["decoding", "redirect-loop"],
    )
    @respx.mock
    async def test_unreadable_response_is_malformed(
        self, sleep: AsyncMock, exc: httpx.HTTPError
    ) -> None:
        route = respx.get(host="reader.test").mock(side_effect=exc)
        async with httpx.AsyncClient() as client:
            with pytest.raises(MalformedResponseError, match=type(exc).__name__):
                await fetch_page(client, PAGE)

        assert route.call_count == 1
        sleep.assert_not_awaited()
