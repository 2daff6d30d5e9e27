"""Construction of a ready-to-use NewsService from settings."""

from __future__ import annotations

import asyncio
from typing import Optional

from .core.config import Settings, get_settings
from .core.logging import get_logger
from .db.session import create_session_factory, init_db
from .feeds.base import FeedClient
from .feeds.newsapi import NewsApiClient
from .repositories.news_store import NewsStore
from .services.news_service import NewsService

logger = get_logger(__name__)


async def create_news_service(
    settings: Optional[Settings] = None,
    *,
    client: Optional[FeedClient] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> NewsService:
    """Create the store tables if needed and wire a NewsService.

    The caller owns the returned service and should ``await service.aclose()``.
    """
    settings = settings or get_settings()
    engine, session_factory = create_session_factory(settings.database_url)
    await init_db(engine)

    store = NewsStore(session_factory, engine=engine)
    client = client or NewsApiClient(settings)
    service = NewsService(
        client,
        store,
        settings=settings,
        loop=loop or asyncio.get_running_loop(),
    )
    logger.info(
        "news_service_ready",
        database_url=settings.database_url,
        cache_ttl_seconds=settings.cache_ttl_seconds,
        api_key_configured=settings.has_api_key,
    )
    return service
