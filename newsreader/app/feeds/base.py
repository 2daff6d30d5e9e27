"""
Abstract base class for remote feed clients.

This module defines the FeedClient interface used by the sync layer, the error
types a client may raise, and the shared HTTP client factory.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx
import structlog

from ..models import ArticleBatch

logger = structlog.get_logger()

# Default timeout for feed requests (seconds)
DEFAULT_FEED_TIMEOUT = 20.0
# Default User-Agent for feed requests
DEFAULT_USER_AGENT = "newsreader/0.1 (+https://github.com/newsreader)"
# Message used when a transport failure carries no text of its own
DEFAULT_NETWORK_ERROR = "Network error occurred"


class FeedClientError(Exception):
    """Base class for failures of a feed request."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportError(FeedClientError):
    """No response reached the client (unreachable host, timeout, reset)."""


class ResponseError(FeedClientError):
    """The server answered, but not with a usable success response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FeedClient(ABC):
    """Remote source of the headline and topic feeds."""

    @abstractmethod
    async def fetch_headlines(self) -> ArticleBatch:
        """
        Fetch the top headlines for the configured country.

        Raises:
            TransportError: When no response was received.
            ResponseError: When the server reported a failure.
        """

    @abstractmethod
    async def fetch_topic(
        self,
        query: str,
        language: str,
        exclude_domain: str,
        sort_by: str,
    ) -> ArticleBatch:
        """
        Fetch articles matching ``query``.

        Raises:
            TransportError: When no response was received.
            ResponseError: When the server reported a failure.
        """

    async def aclose(self) -> None:
        """Release network resources held by the client."""


def build_http_client(
    base_url: str,
    *,
    api_key: Optional[str] = None,
    timeout: float = DEFAULT_FEED_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the HTTP client used for feed requests, with the API key header injected."""
    headers: Dict[str, str] = {"User-Agent": user_agent}
    if api_key:
        headers["X-Api-Key"] = api_key
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        headers=headers,
        follow_redirects=True,
        transport=transport,
    )
