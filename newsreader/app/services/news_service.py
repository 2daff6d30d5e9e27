"""
News service coordinating the headline and general feeds.

For every load request the service serves a valid cached snapshot, joins a
fetch that is already running, or starts the fetch pipeline: call the feed
client, persist headlines to the article store, update the snapshot and
publish the outcome on the feed's result channel. Failures never leave this
service as exceptions; they are published as ``Error`` results.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import structlog

from ..core.config import Settings, get_settings
from ..core.logging import generate_correlation_id, get_logger, log_exception
from ..db.models import CachedArticle
from ..feeds.base import DEFAULT_NETWORK_ERROR, FeedClient, ResponseError, TransportError
from ..models import Article
from ..repositories.news_store import LiveQuery, NewsStore, PersistenceError
from ..sync.cache import Feed, FeedCache, LoadDecision
from ..sync.channel import ResultChannel
from ..sync.result import LOADING, Error, Result, Success
from ..sync.runner import TaskRunner
from .bookmark_service import BookmarkService

logger = get_logger(__name__)

NO_ARTICLES_MESSAGE = "no articles found"

PendingWork = Union["asyncio.Future[Any]", "concurrent.futures.Future[Any]"]
FetchOutcome = Tuple[Result[List[Any]], Optional[List[Any]]]


class NewsService:
    """Cache-aware loader for the headline and general feeds."""

    def __init__(
        self,
        client: FeedClient,
        store: NewsStore,
        *,
        settings: Optional[Settings] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or get_settings()
        self.client = client
        self.store = store
        self.runner = TaskRunner(loop)
        ttl = self.settings.cache_ttl_seconds
        self.caches: Dict[Feed, FeedCache[Any]] = {
            feed: FeedCache(feed, ttl_seconds=ttl, clock=clock) for feed in Feed
        }
        self.channels: Dict[Feed, ResultChannel[Result[List[Any]]]] = {
            feed: ResultChannel(feed.value) for feed in Feed
        }
        self.bookmarks = BookmarkService(store, self.caches[Feed.HEADLINE], self.runner)

    # Read access

    def channel(self, feed: Feed | str) -> ResultChannel[Result[List[Any]]]:
        return self.channels[Feed(feed)]

    def get_cached(self, feed: Feed | str) -> Optional[List[Any]]:
        """The feed's snapshot while it is still valid, otherwise None."""
        return self.caches[Feed(feed)].valid_snapshot()

    def is_cache_valid(self, feed: Feed | str) -> bool:
        return self.caches[Feed(feed)].is_valid()

    def cache_age_minutes(self, feed: Feed | str) -> int:
        return self.caches[Feed(feed)].age_minutes()

    # Loading

    def request_load(
        self,
        feed: Feed | str,
        *,
        stale_while_revalidate: bool = False,
    ) -> Optional[PendingWork]:
        """Serve, join or start a load of ``feed`` without blocking.

        Returns the scheduled fetch, or None when the request was answered
        from the cache or a fetch is already running.

        With ``stale_while_revalidate`` an expired snapshot is published
        immediately instead of ``Loading``, the fetch runs in the background
        and its failures are logged but not published, since data is already
        on display.
        """
        feed = Feed(feed)
        cache = self.caches[feed]
        channel = self.channels[feed]

        claim = cache.claim(serve_stale=stale_while_revalidate)
        if claim.decision is LoadDecision.CACHE_HIT:
            logger.debug("feed_cache_hit", feed=feed.value, age_minutes=cache.age_minutes())
            channel.publish(Success(claim.snapshot))
            return None

        revalidating = claim.snapshot is not None
        if revalidating:
            logger.debug("feed_serving_stale", feed=feed.value, age_minutes=cache.age_minutes())
            channel.publish(Success(claim.snapshot))
        if claim.decision is LoadDecision.IN_FLIGHT:
            logger.debug("feed_fetch_already_in_flight", feed=feed.value)
            return None

        if not revalidating:
            channel.publish(LOADING)
        try:
            return self.runner.spawn(
                self._run_fetch(feed, claim.generation, background=revalidating),
                name=f"fetch:{feed.value}",
            )
        except RuntimeError:
            cache.complete(claim.generation)
            raise

    def refresh(self, feed: Feed | str) -> Optional[PendingWork]:
        """Drop the feed's snapshot and in-flight state, then load it again."""
        self.clear_cache(feed)
        return self.request_load(feed)

    def refresh_all(self) -> Dict[Feed, Optional[PendingWork]]:
        for feed in Feed:
            self.clear_cache(feed)
        return {feed: self.request_load(feed) for feed in Feed}

    def clear_cache(self, feed: Feed | str) -> None:
        feed = Feed(feed)
        self.caches[feed].clear()
        logger.info("feed_cache_cleared", feed=feed.value)

    # Bookmarks

    def set_bookmark(self, article: CachedArticle, bookmarked: bool) -> PendingWork:
        return self.bookmarks.set_bookmark(article, bookmarked)

    async def list_bookmarked(self) -> LiveQuery:
        return await self.bookmarks.list_bookmarked()

    # Fetch pipeline

    async def _run_fetch(
        self,
        feed: Feed,
        generation: int,
        *,
        background: bool = False,
    ) -> Result[List[Any]]:
        log = logger.bind(
            feed=feed.value,
            correlation_id=generate_correlation_id(),
            background=background,
        )
        cache = self.caches[feed]
        started = time.monotonic()
        log.info("feed_fetch_started")

        try:
            result, snapshot = await self._fetch(feed, generation, cache, log)
        except Exception as exc:
            log_exception(log, exc, {"stage": "feed_fetch"})
            result, snapshot = Error(str(exc) or type(exc).__name__), None

        if not cache.complete(generation, snapshot):
            log.info("feed_fetch_discarded_after_reset")
            return result

        log.info(
            "feed_fetch_finished",
            outcome=type(result).__name__,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        if background and isinstance(result, Error):
            # The stale snapshot published by request_load stays on display
            log.warning("feed_revalidation_failed", error=result.message)
            return result
        self.channels[feed].publish(result)
        return result

    async def _fetch(
        self,
        feed: Feed,
        generation: int,
        cache: FeedCache[Any],
        log: structlog.stdlib.BoundLogger,
    ) -> FetchOutcome:
        try:
            if feed is Feed.HEADLINE:
                batch = await self.client.fetch_headlines()
            else:
                batch = await self.client.fetch_topic(
                    query=self.settings.topic_query,
                    language=self.settings.topic_language,
                    exclude_domain=self.settings.topic_exclude_domains,
                    sort_by=self.settings.topic_sort_by,
                )
        except ResponseError as exc:
            log.warning("feed_fetch_rejected", status_code=exc.status_code, error=exc.message)
            return Error(exc.message), None
        except TransportError as exc:
            stale = cache.fallback_snapshot()
            if stale is not None:
                log.warning("feed_fetch_failed_serving_stale", error=exc.message, articles=len(stale))
                return Success(stale), None
            log.warning("feed_fetch_failed", error=exc.message)
            return Error(exc.message or DEFAULT_NETWORK_ERROR), None

        articles = batch.articles if batch is not None else []
        if not articles:
            log.warning("feed_fetch_empty")
            return Error(NO_ARTICLES_MESSAGE), None

        if feed is Feed.HEADLINE:
            records = await self._persist_headlines(articles, generation, cache, log)
            return Success(records), records
        return Success(list(articles)), list(articles)

    async def _persist_headlines(
        self,
        articles: List[Article],
        generation: int,
        cache: FeedCache[Any],
        log: structlog.stdlib.BoundLogger,
    ) -> List[CachedArticle]:
        """Build headline records and swap them into the store.

        The store marks each record with the bookmark state it holds at write
        time. A fetch overtaken by a reset of the cache writes nothing. Store
        failures are logged only; the records are returned either way so the
        in-memory snapshot stays usable.
        """
        records = [CachedArticle.from_article(article) for article in articles]
        if not cache.is_current(generation):
            log.info("headline_persist_skipped_after_reset", articles=len(records))
            return records

        try:
            await self.store.replace_headlines(
                records,
                is_current=lambda: cache.is_current(generation),
            )
        except PersistenceError as exc:
            log.error("headline_persist_failed", error=str(exc), articles=len(records))
        return records

    async def aclose(self) -> None:
        """Wait for background work, then release the client and the store."""
        await self.runner.drain()
        await self.client.aclose()
        await self.store.aclose()
