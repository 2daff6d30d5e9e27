"""Pydantic models for articles delivered by the remote news API."""

from __future__ import annotations

import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Placeholder title the API uses for articles withdrawn by their publisher
REMOVED_TITLE = "[Removed]"

_TRUNCATION_MARKER = re.compile(r"\s*(?:…|\.\.\.)?\s*\[\+\d+ chars\]\s*$")


class ArticleSource(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None


class Article(BaseModel):
    """One article as returned by the headlines or everything endpoint."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str = Field(..., min_length=1)
    published_at: Optional[str] = Field(default=None, alias="publishedAt")
    url_to_image: Optional[str] = Field(default=None, alias="urlToImage")
    url: Optional[str] = None
    source: ArticleSource = Field(default_factory=ArticleSource)
    author: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value or value == REMOVED_TITLE:
            raise ValueError("article has no usable title")
        return value

    @field_validator("source", mode="before")
    @classmethod
    def _default_source(cls, value: Any) -> Any:
        return value or {}

    @property
    def source_name(self) -> Optional[str]:
        return self.source.name

    @property
    def clean_content(self) -> Optional[str]:
        """Body text without the trailing ``[+N chars]`` truncation marker."""
        if self.content is None:
            return None
        return _TRUNCATION_MARKER.sub("", self.content)


class ArticleBatch(BaseModel):
    """Parsed response of a single feed request."""

    status: str = "ok"
    total_results: int = Field(default=0, alias="totalResults")
    articles: List[Article] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def __len__(self) -> int:
        return len(self.articles)
