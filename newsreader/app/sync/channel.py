"""
Replay-latest broadcast channel.

A ResultChannel holds one value. Publishing overwrites it and notifies every
current subscriber; a new subscriber immediately receives the held value.
Intermediate values are not buffered.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

import structlog

T = TypeVar("T")

Subscriber = Callable[[T], None]

logger = structlog.get_logger(__name__)


@dataclass
class _Subscription(Generic[T]):
    callback: Subscriber
    # Version of the last value handed to the callback
    seen: int = 0


class ResultChannel(Generic[T]):
    """Single-slot, multi-subscriber notification primitive.

    Callbacks run outside the channel lock, so a subscriber may publish,
    subscribe or wait on another thread that does. Each subscriber only ever
    moves forward: a value older than one it already received is skipped.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._ids = itertools.count()
        self._subscribers: Dict[int, _Subscription[T]] = {}
        self._value: Optional[T] = None
        self._version = 0

    @property
    def value(self) -> Optional[T]:
        """The most recently published value, or None before the first publish."""
        with self._lock:
            return self._value

    @property
    def has_value(self) -> bool:
        with self._lock:
            return self._version > 0

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` and replay the held value to it.

        Returns a function that removes the subscription. Calling it more than
        once is harmless.
        """
        with self._lock:
            token = next(self._ids)
            self._subscribers[token] = _Subscription(callback)
            value, version = self._value, self._version
        if version:
            self._deliver(token, value, version)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe

    def publish(self, value: T) -> None:
        """Overwrite the held value and notify subscribers in registration order."""
        with self._lock:
            self._version += 1
            self._value = value
            version = self._version
            tokens = list(self._subscribers)
        for token in tokens:
            self._deliver(token, value, version)

    def _deliver(self, token: int, value: T, version: int) -> None:
        with self._lock:
            subscription = self._subscribers.get(token)
            if subscription is None or subscription.seen >= version:
                return
            subscription.seen = version
            callback = subscription.callback
        try:
            callback(value)
        except Exception as exc:
            logger.error(
                "channel_subscriber_failed",
                channel=self.name,
                subscriber=token,
                error=str(exc),
                exc_info=exc,
            )
