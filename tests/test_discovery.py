"""Tests for link discovery: pure extractors plus the three strategies.

The seed site (``example.com``) and the reader endpoint (``reader.test``) are
both mocked with ``respx``.  A catch-all 404 route for the seed host is
registered last so unlisted feed paths miss cleanly.
"""

from __future__ import annotations

import httpx
import pytest
import respx

from harvester.config import settings
from harvester.scraper.discovery import (
    discover_common_paths,
    discover_feed,
    discover_links,
    extract_bare_urls,
    extract_feed_urls,
    extract_links,
    extract_markdown_links,
    filter_navigation,
    is_feed,
    normalize_url,
)
from harvester.scraper.fetcher import FetchStatusError

SEED = "https://example.com/"

SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://example.com/posts/one</loc></url>
  <url><loc>https://example.com/posts/two</loc></url>
  <url><loc>https://example.com/posts/three</loc></url>
  <url><loc>https://other.com/posts/elsewhere</loc></url>
</urlset>
"""

RSS = """<rss version="2.0"><channel>
  <title>Blog</title>
  <item><title>A</title><link>https://example.com/blog/a</link></item>
  <item><title>B</title><link>https://example.com/blog/b</link></item>
</channel></rss>
"""

ATOM = """<feed xmlns="http://www.w3.org/2005/Atom">
  <link rel="self" href="https://example.com/atom.xml"/>
  <entry><link href="https://example.com/notes/x"/></entry>
</feed>
"""

MARKDOWN = """\
# Home

Read [our first post](https://example.com/posts/first) and
[the second one](/posts/second "Second").
![logo](https://example.com/static/logo.png)
[Log in](https://example.com/login)
[Elsewhere](https://other.com/posts/x)
Bare link: https://example.com/posts/third.
Duplicate: https://example.com/posts/first
Home again: https://example.com/
Fragment: [jump](https://example.com/posts/first#comments)
"""


def _reader(content: str, title: str = "Page") -> httpx.Response:
    return httpx.Response(200, json={"data": {"title": title, "content": content}})


@pytest.fixture(autouse=True)
def _fast(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "reader_base_url", "https://reader.test/")
    monkeypatch.setattr(settings, "probe_delay", 0)
    monkeypatch.setattr(settings, "fetch_max_retries", 0)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

class TestFeedParsing:
    def test_is_feed_markers(self) -> None:
        assert is_feed(SITEMAP)
        assert is_feed(RSS)
        assert is_feed(ATOM)
        assert not is_feed("<html><body>Not found</body></html>")

    def test_sitemap_locs_same_host_only(self) -> None:
        assert extract_feed_urls(SITEMAP, SEED) == [
            "https://example.com/posts/one",
            "https://example.com/posts/two",
            "https://example.com/posts/three",
        ]

    def test_rss_links(self) -> None:
        assert extract_feed_urls(RSS, SEED) == [
            "https://example.com/blog/a",
            "https://example.com/blog/b",
        ]

    def test_atom_href_links_skip_xml_self_link(self) -> None:
        assert extract_feed_urls(ATOM, SEED) == ["https://example.com/notes/x"]


class TestLinkExtraction:
    def test_markdown_links(self) -> None:
        links = extract_markdown_links(MARKDOWN, SEED)
        assert "https://example.com/posts/first" in links
        assert "https://example.com/posts/second" in links
        assert "https://example.com/static/logo.png" not in links
        assert "https://other.com/posts/x" not in links

    def test_bare_urls_strip_trailing_punctuation(self) -> None:
        links = extract_bare_urls(MARKDOWN, SEED)
        assert "https://example.com/posts/third" in links
        assert "https://example.com/" not in links

    def test_union_is_deduplicated_and_filtered(self) -> None:
        links = extract_links(MARKDOWN, SEED)
        assert links.count("https://example.com/posts/first") == 1
        assert "https://example.com/login" not in links
        assert set(links) == {
            "https://example.com/posts/first",
            "https://example.com/posts/second",
            "https://example.com/posts/third",
        }

    def test_relative_links_resolve_against_page(self) -> None:
        links = extract_markdown_links("[x](next)", SEED, "https://example.com/blog/")
        assert links == ["https://example.com/blog/next"]

    def test_normalize_url_drops_fragment(self) -> None:
        assert normalize_url(" https://example.com/a#top ") == "https://example.com/a"

    def test_filter_navigation(self) -> None:
        urls = [
            "https://example.com/pricing",
            "https://example.com/privacy-policy",
            "https://example.com/guides/setup",
        ]
        assert filter_navigation(urls) == ["https://example.com/guides/setup"]

    def test_non_http_schemes_ignored(self) -> None:
        assert extract_markdown_links("[mail](mailto:a@example.com)", SEED) == []


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class TestDiscoverFeed:
    @respx.mock
    async def test_first_productive_feed_wins(self) -> None:
        respx.get("https://example.com/rss").mock(return_value=httpx.Response(200, text=RSS))
        sitemap = respx.get("https://example.com/sitemap.xml").mock(
            return_value=httpx.Response(200, text=SITEMAP)
        )
        respx.route(host="example.com").mock(return_value=httpx.Response(404))

        async with httpx.AsyncClient() as client:
            urls = await discover_feed(client, SEED)

        assert urls == ["https://example.com/blog/a", "https://example.com/blog/b"]
        assert not sitemap.called

    @respx.mock
    async def test_non_feed_body_is_skipped(self) -> None:
        respx.get("https://example.com/feed").mock(
            return_value=httpx.Response(200, text="<html>home</html>")
        )
        respx.route(host="example.com").mock(side_effect=httpx.ConnectError("down"))

        async with httpx.AsyncClient() as client:
            assert await discover_feed(client, SEED) == []


class TestDiscoverCommonPaths:
    @respx.mock
    async def test_collects_links_from_sections(self) -> None:
        def reader(request: httpx.Request) -> httpx.Response:
            if str(request.url).endswith("/blog"):
                return _reader("[A](/blog/a) [B](https://example.com/blog/b)")
            return httpx.Response(404)

        respx.route(host="reader.test").mock(side_effect=reader)

        async with httpx.AsyncClient() as client:
            urls = await discover_common_paths(client, SEED)

        assert urls == ["https://example.com/blog/a", "https://example.com/blog/b"]


class TestDiscoverLinks:
    @respx.mock
    async def test_sitemap_short_circuits_other_strategies(self) -> None:
        respx.get("https://example.com/sitemap.xml").mock(
            return_value=httpx.Response(200, text=SITEMAP)
        )
        respx.route(host="example.com").mock(return_value=httpx.Response(404))
        reader = respx.route(host="reader.test").mock(return_value=_reader(""))

        async with httpx.AsyncClient() as client:
            result = await discover_links(client, SEED)

        assert result.strategy == "feed"
        assert result.urls == [
            "https://example.com/posts/one",
            "https://example.com/posts/two",
            "https://example.com/posts/three",
        ]
        assert result.seed_page is None
        assert not reader.called

    @respx.mock
    async def test_sections_and_main_page_are_unioned(self) -> None:
        respx.route(host="example.com").mock(return_value=httpx.Response(404))

        def reader(request: httpx.Request) -> httpx.Response:
            target = str(request.url)[len("https://reader.test/"):]
            if target == "https://example.com/articles":
                return _reader("[One](/articles/one) [Shared](/posts/shared)")
            if target == SEED:
                return _reader("[Shared](/posts/shared) [Two](/posts/two)", title="Home")
            return httpx.Response(404)

        respx.route(host="reader.test").mock(side_effect=reader)

        async with httpx.AsyncClient() as client:
            result = await discover_links(client, SEED)

        assert result.strategy == "links"
        assert result.urls == [
            "https://example.com/articles/one",
            "https://example.com/posts/shared",
            "https://example.com/posts/two",
        ]
        assert result.seed_page is not None
        assert result.seed_page.title == "Home"

    @respx.mock
    async def test_nothing_found_is_empty_with_seed_page(self) -> None:
        respx.route(host="example.com").mock(return_value=httpx.Response(404))

        def reader(request: httpx.Request) -> httpx.Response:
            if str(request.url) == f"https://reader.test/{SEED}":
                return _reader("Just some text without any links.", title="Home")
            return httpx.Response(404)

        respx.route(host="reader.test").mock(side_effect=reader)

        async with httpx.AsyncClient() as client:
            result = await discover_links(client, SEED)

        assert result.is_empty
        assert result.strategy == "none"
        assert result.seed_page is not None

    @respx.mock
    async def test_main_page_failure_escalates(self) -> None:
        respx.route(host="example.com").mock(return_value=httpx.Response(404))
        respx.route(host="reader.test").mock(return_value=httpx.Response(500))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FetchStatusError):
                await discover_links(client, SEED)
