"""Cache, channel and result primitives shared by the feed services."""

from .cache import DEFAULT_CACHE_TTL_SECONDS, Feed, FeedCache, LoadClaim, LoadDecision
from .channel import ResultChannel
from .result import LOADING, Error, Loading, Result, Success
from .runner import TaskRunner

__all__ = [
    "DEFAULT_CACHE_TTL_SECONDS",
    "Feed",
    "FeedCache",
    "LoadClaim",
    "LoadDecision",
    "ResultChannel",
    "LOADING",
    "Error",
    "Loading",
    "Result",
    "Success",
    "TaskRunner",
]
