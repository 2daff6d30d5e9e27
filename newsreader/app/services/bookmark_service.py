"""
Bookmark service keeping the article store and the headline cache in step.

Toggling a bookmark is fire-and-forget for the caller: the record passed in is
updated immediately, the store write runs in the background and failures are
only logged.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from typing import Any, Union

from ..core.logging import generate_correlation_id, get_logger
from ..db.models import CachedArticle
from ..repositories.news_store import LiveQuery, NewsStore, PersistenceError
from ..sync.cache import FeedCache
from ..sync.runner import TaskRunner

logger = get_logger(__name__)


class BookmarkService:
    """Apply bookmark toggles to the store and the in-memory headline snapshot."""

    def __init__(
        self,
        store: NewsStore,
        headline_cache: FeedCache[CachedArticle],
        runner: TaskRunner,
    ) -> None:
        self.store = store
        self.headline_cache = headline_cache
        self.runner = runner

    def set_bookmark(
        self, article: CachedArticle, bookmarked: bool
    ) -> Union["asyncio.Future[Any]", "concurrent.futures.Future[Any]"]:
        """Mark ``article`` and persist the change in the background.

        The returned future only tells when the write finished; it never
        carries an exception.
        """
        article.is_bookmarked = bookmarked
        return self.runner.spawn(
            self.apply_bookmark(article, bookmarked),
            name=f"bookmark:{article.title}",
        )

    async def apply_bookmark(self, article: CachedArticle, bookmarked: bool) -> None:
        """Write the bookmark state and mirror it into the headline snapshot."""
        log = logger.bind(
            correlation_id=generate_correlation_id(),
            title=article.title,
            bookmarked=bookmarked,
        )
        article.is_bookmarked = bookmarked
        try:
            if bookmarked:
                # Full upsert so articles from the general feed become durable too
                await self.store.upsert(article)
            else:
                await self.store.update(article)
            log.info("bookmark_written")
        except PersistenceError as exc:
            log.error("bookmark_write_failed", error=str(exc))
        except Exception as exc:
            log.error("bookmark_write_failed", error=str(exc), exc_info=exc)

        synced = self.headline_cache.update_where(
            lambda cached: cached.title == article.title,
            lambda cached: setattr(cached, "is_bookmarked", bookmarked),
        )
        if synced:
            log.debug("bookmark_synced_to_headline_cache", records=synced)

    async def list_bookmarked(self) -> LiveQuery:
        """Bookmarked articles, newest first, re-published whenever the table changes."""
        return await self.store.observe_bookmarked()
