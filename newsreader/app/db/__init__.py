"""Database utilities for the article store."""

from .session import check_db_connection, create_session_factory, init_db
from .models import Base, CachedArticle

__all__ = [
    "check_db_connection",
    "create_session_factory",
    "init_db",
    "Base",
    "CachedArticle",
]
