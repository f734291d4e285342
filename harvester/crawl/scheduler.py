"""Crawl scheduler: adaptive-concurrency batch fetching over a URL set.

The discovered URLs are processed in sequential batches.  Each batch is as
large as the *current* concurrency level and runs fully concurrently; the
next batch starts only after the whole batch finished and a short pacing
delay elapsed.

Concurrency hill-climbs inside ``[min_concurrency, max_concurrency]``:

- every ``success_streak`` consecutive successful fetches → +1
- every ``rate_limit_streak`` consecutive ``429`` responses → -1

All of that bookkeeping lives in a :class:`CrawlState` owned by the single
task running the job and threaded explicitly through the batch loop.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional

from harvester.config import settings
from harvester.scraper.classifier import classify_crawled_page
from harvester.scraper.fetcher import FetchError, RateLimitedError
from harvester.scraper.models import ExtractedPage, Item

# (url, on_rate_limit) -> page
PageFetcher = Callable[[str, Callable[[], None]], Awaitable[ExtractedPage]]
ProgressCallback = Callable[["CrawlState"], None]


@dataclass
class CrawlState:
    """Mutable per-job crawl state.  Never shared between jobs."""

    concurrency: int
    min_concurrency: int
    max_concurrency: int
    success_streak_target: int
    rate_limit_streak_target: int
    successes: int = 0
    rate_limits: int = 0
    attempted: int = 0
    total: int = 0
    timed_out: bool = False
    items: List[Item] = field(default_factory=list)
    seen_urls: set[str] = field(default_factory=set)

    @classmethod
    def from_settings(cls) -> "CrawlState":
        return cls(
            concurrency=settings.initial_concurrency,
            min_concurrency=settings.min_concurrency,
            max_concurrency=settings.max_concurrency,
            success_streak_target=settings.success_streak,
            rate_limit_streak_target=settings.rate_limit_streak,
        )

    def record_success(self) -> None:
        self.successes += 1
        self.rate_limits = 0
        if self.successes >= self.success_streak_target:
            self.successes = 0
            if self.concurrency < self.max_concurrency:
                self.concurrency += 1
                print(f"[CRAWL] 📈 Increased concurrency to {self.concurrency}")

    def record_rate_limit(self) -> None:
        self.rate_limits += 1
        self.successes = 0
        if self.rate_limits >= self.rate_limit_streak_target:
            self.rate_limits = 0
            if self.concurrency > self.min_concurrency:
                self.concurrency -= 1
                print(f"[CRAWL] 📉 Reduced concurrency to {self.concurrency} due to rate limits")

    def add_item(self, item: Item) -> bool:
        """Append *item* unless its ``source_url`` is already present."""
        if item.source_url in self.seen_urls:
            return False
        self.seen_urls.add(item.source_url)
        self.items.append(item)
        return True


async def _pace(seconds: float) -> None:
    await asyncio.sleep(seconds)


def accept_page(
    url: str,
    page: ExtractedPage,
    *,
    min_length: Optional[int] = None,
    classify: Callable[[str, str, str], str] = classify_crawled_page,
) -> Optional[Item]:
    """Turn a fetched page into an item, or ``None`` if its content is too thin.

    Content must be non-blank and strictly longer than ``min_length``
    characters (``settings.min_content_length`` by default).
    """
    threshold = settings.min_content_length if min_length is None else min_length
    content = page.content
    if not content.strip() or len(content) <= threshold:
        return None
    title = page.title or url
    return Item(
        title=title,
        content=content,
        content_type=classify(url, title, content),
        source_url=url,
    )


class CrawlScheduler:
    """Drive fetches for one job under a wall-clock budget.

    Args:
        fetch: Coroutine function fetching one URL; receives a callback to
            invoke on every ``429`` response.
        started_at: ``clock()`` reading taken when the job started.
        budget: Seconds allowed since ``started_at``.  Checked before every
            batch.
        on_progress: Called after each completed batch.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        fetch: PageFetcher,
        *,
        started_at: float,
        budget: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
        clock: Callable[[], float] = time.monotonic,
        batch_delay: Optional[float] = None,
        min_content_length: Optional[int] = None,
        classify: Callable[[str, str, str], str] = classify_crawled_page,
    ) -> None:
        self._fetch = fetch
        self._started_at = started_at
        self._budget = settings.crawl_time_budget if budget is None else budget
        self._on_progress = on_progress
        self._clock = clock
        self._batch_delay = settings.batch_delay if batch_delay is None else batch_delay
        self._min_length = (
            settings.min_content_length if min_content_length is None else min_content_length
        )
        self._classify = classify

    def budget_exceeded(self) -> bool:
        return self._clock() - self._started_at > self._budget

    def accept(self, url: str, page: ExtractedPage) -> Optional[Item]:
        return accept_page(url, page, min_length=self._min_length, classify=self._classify)

    async def _scrape_one(self, url: str, state: CrawlState) -> Optional[Item]:
        try:
            page = await self._fetch(url, state.record_rate_limit)
        except RateLimitedError:
            print(f"[CRAWL] ✗ Rate limited: {url}")
            return None
        except FetchError as exc:
            print(f"[CRAWL] ✗ Failed: {url} - {exc}")
            return None

        state.record_success()
        item = self.accept(url, page)
        if item is not None:
            print(f"[CRAWL] ✓ {item.title[:50]}")
        return item

    async def run(self, urls: Iterable[str], state: CrawlState) -> CrawlState:
        """Fetch every URL (or as many as the budget allows) into *state*.

        ``state.attempted`` counts URLs whose fetch finished, whether or not
        they produced an item.  ``state.timed_out`` is set when the budget
        stopped the loop before the URL set was exhausted.
        """
        pending = list(dict.fromkeys(urls))
        index = 0

        while index < len(pending):
            if self.budget_exceeded():
                state.timed_out = True
                print(
                    f"[CRAWL] ⏱ Time budget reached after {state.attempted}/{len(pending)} "
                    f"URL(s); keeping {len(state.items)} item(s)"
                )
                break

            batch = pending[index:index + state.concurrency]
            results = await asyncio.gather(*(self._scrape_one(u, state) for u in batch))
            for item in results:
                if item is not None:
                    state.add_item(item)

            index += len(batch)
            state.attempted = index
            if self._on_progress is not None:
                self._on_progress(state)

            if index < len(pending) and self._batch_delay > 0:
                await _pace(self._batch_delay)

        print(f"[CRAWL] Scraped {len(state.items)}/{len(pending)} page(s)")
        return state
