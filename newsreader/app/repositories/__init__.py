"""Repository layer exports."""

from .news_repo import NewsRepository
from .news_store import LiveQuery, NewsStore, PersistenceError

__all__ = [
    "LiveQuery",
    "NewsRepository",
    "NewsStore",
    "PersistenceError",
]
