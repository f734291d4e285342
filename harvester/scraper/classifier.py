"""Coarse content-type labelling for extracted pages.

Two classifiers live here on purpose and must not be merged:

- :func:`classify_crawled_page` labels items produced by a crawl job and
  defaults to ``blog`` (most crawled pages are article-like).
- :func:`detect_content_type` is the standalone classifier behind
  ``POST /classify`` and defaults to ``other``.

The defaults disagree, so an ambiguous page is labelled differently by the
two call sites.  Unifying them would shift the label distribution for one
of the consumers; see DESIGN.md.

Both are pure, deterministic and case-insensitive.
"""

from __future__ import annotations

import re

CONTENT_TYPES = (
    "linkedin_post",
    "reddit_comment",
    "podcast_transcript",
    "book",
    "blog",
    "call_transcript",
    "other",
)

_DATE_PATH = re.compile(r"/\d{4}/\d{2}/")

_BLOG_PATHS = (
    "/blog", "/post", "/article", "/guide", "/learn",
    "/topics", "/interview", "/insights", "/news",
)


def classify_crawled_page(url: str, title: str, content: str) -> str:
    """Label a page produced by the crawl scheduler.  Defaults to ``blog``."""
    url_l = url.lower()
    title_l = title.lower()
    content_l = content.lower()

    if "linkedin.com" in url_l:
        return "linkedin_post"
    if "reddit.com" in url_l:
        return "reddit_comment"
    if "/blog" in url_l or "/post" in url_l:
        return "blog"
    if "/podcast" in url_l:
        return "podcast_transcript"
    if "book" in title_l or "chapter" in content_l:
        return "book"
    if "transcript" in content_l:
        return "podcast_transcript"
    return "blog"


def detect_content_type(url: str, title: str, content: str) -> str:
    """Label an arbitrary page for the standalone classifier.  Defaults to ``other``."""
    url_l = url.lower()
    title_l = title.lower()
    content_l = content.lower()

    # Host-specific signals
    if "linkedin.com" in url_l or "linkedin" in title_l:
        return "linkedin_post"
    if "reddit.com" in url_l or "reddit" in title_l:
        return "reddit_comment"

    if (
        "/podcast" in url_l
        or "/episode" in url_l
        or "podcast" in title_l
        or "transcript" in content_l
        or "listen to" in content_l
    ):
        return "podcast_transcript"

    if (
        "/book" in url_l
        or "/chapter" in url_l
        or "book" in title_l
        or "chapter" in title_l
    ):
        return "book"

    if (
        any(p in url_l for p in _BLOG_PATHS)
        or _DATE_PATH.search(url_l)
        or "guide" in title_l
    ):
        return "blog"

    if (
        "speaker:" in content_l
        or "transcript:" in content_l
        or "call transcript" in title_l
    ):
        return "call_transcript"

    return "other"
