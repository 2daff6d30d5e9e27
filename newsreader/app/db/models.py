"""SQLAlchemy models for persistent storage."""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..models import Article


class Base(DeclarativeBase):
    """Base declarative class."""


class CachedArticle(Base):
    """One stored article per unique title, optionally bookmarked."""

    __tablename__ = "news"
    __table_args__ = (
        Index("ix_news_bookmarked_published", "is_bookmarked", "published_at"),
    )

    title: Mapped[str] = mapped_column(String(512), primary_key=True)
    published_at: Mapped[str | None] = mapped_column(String(64), nullable=True)
    url_to_image: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    source_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    author: Mapped[str | None] = mapped_column(String(512), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_bookmarked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @classmethod
    def from_article(cls, article: Article, *, is_bookmarked: bool = False) -> "CachedArticle":
        """Build a storable record from a feed article."""
        return cls(
            title=article.title,
            published_at=article.published_at,
            url_to_image=article.url_to_image,
            url=article.url,
            source_name=article.source_name,
            author=article.author,
            description=article.description,
            content=article.clean_content,
            is_bookmarked=is_bookmarked,
        )

    def to_row(self) -> Dict[str, Any]:
        """Column values for Core insert/update statements."""
        return {
            "title": self.title,
            "published_at": self.published_at,
            "url_to_image": self.url_to_image,
            "url": self.url,
            "source_name": self.source_name,
            "author": self.author,
            "description": self.description,
            "content": self.content,
            "is_bookmarked": bool(self.is_bookmarked),
        }

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<CachedArticle title={self.title!r} bookmarked={self.is_bookmarked}>"
