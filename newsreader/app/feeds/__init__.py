"""Remote feed clients."""

from .base import (
    FeedClient,
    FeedClientError,
    ResponseError,
    TransportError,
    build_http_client,
)
from .newsapi import NewsApiClient

__all__ = [
    "FeedClient",
    "FeedClientError",
    "ResponseError",
    "TransportError",
    "build_http_client",
    "NewsApiClient",
]
