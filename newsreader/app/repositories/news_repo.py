"""Repository helpers for cached article persistence."""

from __future__ import annotations

from typing import List, Sequence, Set

from sqlalchemy import delete, exists, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.logging import get_logger
from ..db.models import CachedArticle

logger = get_logger(__name__)

_UPDATABLE_COLUMNS = (
    "published_at",
    "url_to_image",
    "url",
    "source_name",
    "author",
    "description",
    "content",
    "is_bookmarked",
)


class NewsRepository:
    """Encapsulate SQL for the ``news`` table within one session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.log = logger.bind(component="NewsRepository")

    async def list_all(self) -> List[CachedArticle]:
        stmt = select(CachedArticle).order_by(CachedArticle.published_at.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_bookmarked(self) -> List[CachedArticle]:
        stmt = (
            select(CachedArticle)
            .where(CachedArticle.is_bookmarked.is_(True))
            .order_by(CachedArticle.published_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_by_title(self, title: str) -> CachedArticle | None:
        stmt = select(CachedArticle).where(CachedArticle.title == title).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def is_bookmarked(self, title: str) -> bool:
        stmt = select(
            exists().where(
                CachedArticle.title == title,
                CachedArticle.is_bookmarked.is_(True),
            )
        )
        result = await self.session.execute(stmt)
        return bool(result.scalar())

    async def bookmarked_titles(self, titles: Sequence[str]) -> Set[str]:
        """Titles among ``titles`` stored with the bookmark flag set."""
        if not titles:
            return set()
        stmt = select(CachedArticle.title).where(
            CachedArticle.title.in_(titles),
            CachedArticle.is_bookmarked.is_(True),
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def insert_ignore(self, records: Sequence[CachedArticle]) -> int:
        """Insert records, skipping titles that are already stored."""
        if not records:
            return 0
        stmt = (
            sqlite_insert(CachedArticle)
            .values([record.to_row() for record in records])
            .on_conflict_do_nothing(index_elements=[CachedArticle.title])
        )
        result = await self.session.execute(stmt)
        inserted = max(result.rowcount or 0, 0)
        self.log.debug("news_insert_ignore", requested=len(records), inserted=inserted)
        return inserted

    async def upsert(self, record: CachedArticle) -> None:
        """Insert the record or replace every column of the stored one."""
        stmt = sqlite_insert(CachedArticle).values(record.to_row())
        stmt = stmt.on_conflict_do_update(
            index_elements=[CachedArticle.title],
            set_={column: stmt.excluded[column] for column in _UPDATABLE_COLUMNS},
        )
        await self.session.execute(stmt)
        self.log.debug("news_upserted", title=record.title, bookmarked=record.is_bookmarked)

    async def update(self, record: CachedArticle) -> int:
        """Update the stored row with the record's title. Returns affected rows."""
        row = record.to_row()
        row.pop("title")
        stmt = update(CachedArticle).where(CachedArticle.title == record.title).values(**row)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def delete_non_bookmarked(self) -> int:
        stmt = delete(CachedArticle).where(CachedArticle.is_bookmarked.is_(False))
        result = await self.session.execute(stmt)
        deleted = result.rowcount or 0
        self.log.debug("news_unbookmarked_deleted", deleted=deleted)
        return deleted
