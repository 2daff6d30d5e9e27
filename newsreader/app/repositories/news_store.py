"""
Transactional article store with live queries.

NewsStore runs every repository operation in its own transaction, converts
database failures into PersistenceError and re-runs the live queries it handed
out after each committed write.
"""

from __future__ import annotations

import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..core.logging import get_logger
from ..db.models import CachedArticle
from ..sync.channel import ResultChannel
from .news_repo import NewsRepository

logger = get_logger(__name__)

QueryFn = Callable[[NewsRepository], Awaitable[List[CachedArticle]]]


class PersistenceError(Exception):
    """A read or write against the article store failed."""


class _SupersededWrite(Exception):
    """Raised inside a transaction to roll back a write that is no longer wanted."""


class LiveQuery(ResultChannel[List[CachedArticle]]):
    """Channel holding the latest result of a store query.

    The owning store reloads it after every committed write, so subscribers
    see the table as it changes.
    """

    def __init__(self, name: str, store: "NewsStore", query: QueryFn) -> None:
        super().__init__(name)
        self._store = store
        self._query = query
        self._closed = False

    async def reload(self) -> List[CachedArticle]:
        rows = await self._store.run(self._query)
        if not self._closed:
            self.publish(rows)
        return rows

    def close(self) -> None:
        self._closed = True
        self._store._forget(self)


class NewsStore:
    """Persistent store of cached articles backed by an async session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self.session_factory = session_factory
        self._engine = engine
        self._live: "weakref.WeakSet[LiveQuery]" = weakref.WeakSet()
        self.log = logger.bind(component="NewsStore")

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[NewsRepository]:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield NewsRepository(session)
        except SQLAlchemyError as exc:
            self.log.error("news_store_operation_failed", error=str(exc))
            raise PersistenceError(str(exc)) from exc

    async def run(self, query: QueryFn) -> List[CachedArticle]:
        async with self._transaction() as repo:
            return await query(repo)

    # Queries

    async def query_all(self) -> List[CachedArticle]:
        return await self.run(NewsRepository.list_all)

    async def query_bookmarked(self) -> List[CachedArticle]:
        return await self.run(NewsRepository.list_bookmarked)

    async def find_by_title(self, title: str) -> Optional[CachedArticle]:
        async with self._transaction() as repo:
            return await repo.find_by_title(title)

    async def exists_bookmarked(self, title: str) -> bool:
        async with self._transaction() as repo:
            return await repo.is_bookmarked(title)

    async def observe_all(self) -> LiveQuery:
        return await self._observe("news_all", NewsRepository.list_all)

    async def observe_bookmarked(self) -> LiveQuery:
        return await self._observe("news_bookmarked", NewsRepository.list_bookmarked)

    async def _observe(self, name: str, query: QueryFn) -> LiveQuery:
        live = LiveQuery(name, self, query)
        await live.reload()
        self._live.add(live)
        return live

    def _forget(self, live: LiveQuery) -> None:
        self._live.discard(live)

    # Writes

    async def insert_ignore(self, records: Sequence[CachedArticle]) -> int:
        async with self._transaction() as repo:
            inserted = await repo.insert_ignore(records)
        await self._notify_changed()
        return inserted

    async def upsert(self, record: CachedArticle) -> None:
        async with self._transaction() as repo:
            await repo.upsert(record)
        await self._notify_changed()

    async def update(self, record: CachedArticle) -> int:
        async with self._transaction() as repo:
            updated = await repo.update(record)
        if not updated:
            self.log.warning("news_update_missing_row", title=record.title)
        await self._notify_changed()
        return updated

    async def delete_non_bookmarked(self) -> int:
        async with self._transaction() as repo:
            deleted = await repo.delete_non_bookmarked()
        await self._notify_changed()
        return deleted

    async def replace_headlines(
        self,
        records: Sequence[CachedArticle],
        *,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> Optional[int]:
        """Swap the non-bookmarked rows for ``records`` in one transaction.

        Bookmarked rows are never deleted. Each record's ``is_bookmarked`` is
        set from the rows left after the delete, so it reflects the stored
        state while this transaction holds the write lock. Titles already
        stored are skipped. When ``is_current`` returns False before commit
        the transaction is rolled back and None is returned.
        """
        try:
            async with self._transaction() as repo:
                deleted = await repo.delete_non_bookmarked()
                bookmarked = await repo.bookmarked_titles([record.title for record in records])
                for record in records:
                    record.is_bookmarked = record.title in bookmarked
                inserted = await repo.insert_ignore(records)
                if is_current is not None and not is_current():
                    raise _SupersededWrite()
        except _SupersededWrite:
            self.log.info("headlines_replace_superseded", articles=len(records))
            return None
        self.log.info(
            "headlines_replaced",
            deleted=deleted,
            inserted=inserted,
            skipped=len(records) - inserted,
        )
        await self._notify_changed()
        return inserted

    async def _notify_changed(self) -> None:
        for live in list(self._live):
            try:
                await live.reload()
            except PersistenceError as exc:
                self.log.warning("live_query_reload_failed", query=live.name, error=str(exc))

    async def aclose(self) -> None:
        self._live = weakref.WeakSet()
        if self._engine is not None:
            await self._engine.dispose()
