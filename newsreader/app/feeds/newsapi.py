"""
News API client implementation.

Fetches the ``top-headlines`` and ``everything`` endpoints and normalizes the
response into an ArticleBatch. Requests that fail without a response are
retried with exponential backoff before surfacing as TransportError.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.config import Settings, get_settings
from ..models import Article, ArticleBatch
from .base import (
    DEFAULT_NETWORK_ERROR,
    FeedClient,
    ResponseError,
    TransportError,
    build_http_client,
    logger as base_logger,
)

HEADLINES_PATH = "top-headlines"
EVERYTHING_PATH = "everything"


class NewsApiClient(FeedClient):
    """FeedClient backed by the newsapi.org v2 REST API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        session: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session = session
        self.logger = base_logger.bind(feed_client="newsapi", base_url=self.settings.newsapi_base_url)

    @property
    def session(self) -> httpx.AsyncClient:
        """Lazy-initialize HTTP client on first use."""
        if self._session is None or self._session.is_closed:
            self._session = build_http_client(
                self.settings.newsapi_base_url,
                api_key=self.settings.newsapi_api_key,
                timeout=self.settings.newsapi_timeout_seconds,
            )
        return self._session

    async def fetch_headlines(self) -> ArticleBatch:
        return await self._get(HEADLINES_PATH, {"country": self.settings.headline_country})

    async def fetch_topic(
        self,
        query: str,
        language: str,
        exclude_domain: str,
        sort_by: str,
    ) -> ArticleBatch:
        params = {"q": query, "language": language, "sortBy": sort_by}
        if exclude_domain:
            params["excludeDomains"] = exclude_domain
        return await self._get(EVERYTHING_PATH, params)

    async def aclose(self) -> None:
        if self._session is not None and not self._session.is_closed:
            await self._session.aclose()

    async def _get(self, path: str, params: Dict[str, str]) -> ArticleBatch:
        self.logger.info("feed_request_started", path=path, params=params)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.newsapi_max_attempts),
            wait=wait_exponential(multiplier=self.settings.newsapi_retry_backoff_seconds, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self.session.get(path, params=params)
        except httpx.RequestError as e:
            message = str(e) or DEFAULT_NETWORK_ERROR
            self.logger.error("feed_request_transport_error", path=path, error=message)
            raise TransportError(message) from e

        payload = self._decode(response)
        if response.is_error or payload.get("status") == "error":
            message = self._server_message(response, payload)
            self.logger.error(
                "feed_request_rejected",
                path=path,
                status_code=response.status_code,
                error=message,
            )
            raise ResponseError(message, status_code=response.status_code)

        articles = self._parse_articles(payload.get("articles") or [])
        self.logger.info(
            "feed_request_completed",
            path=path,
            total_results=payload.get("totalResults"),
            article_count=len(articles),
        )
        return ArticleBatch(
            status=payload.get("status") or "ok",
            total_results=payload.get("totalResults") or len(articles),
            articles=articles,
        )

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            if response.is_error:
                return {}
            raise ResponseError("Malformed response body", status_code=response.status_code)
        return payload if isinstance(payload, dict) else {}

    def _server_message(self, response: httpx.Response, payload: Dict[str, Any]) -> str:
        message = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
        return response.reason_phrase or f"HTTP {response.status_code}"

    def _parse_articles(self, raw_articles: List[Any]) -> List[Article]:
        """Validate raw entries, dropping untitled ones and repeated titles."""
        articles: List[Article] = []
        seen_titles = set()
        for raw in raw_articles:
            try:
                article = Article.model_validate(raw)
            except ValidationError as e:
                url = raw.get("url") if isinstance(raw, dict) else None
                self.logger.warning("feed_article_skipped", url=url, error=str(e))
                continue
            if article.title in seen_titles:
                self.logger.debug("feed_article_duplicate", title=article.title)
                continue
            seen_titles.add(article.title)
            articles.append(article)
        return articles
