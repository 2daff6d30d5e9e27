"""
In-memory snapshot holder for one feed.

A FeedCache keeps the last successful fetch of a feed together with the time it
was taken and whether a fetch is currently running. All state transitions go
through a single lock so that the cache check and the in-flight claim happen as
one step.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, List, Optional, TypeVar

T = TypeVar("T")

DEFAULT_CACHE_TTL_SECONDS = 300


class Feed(str, Enum):
    """The two article feeds served by the client."""

    HEADLINE = "headline"
    GENERAL = "general"


class LoadDecision(Enum):
    CACHE_HIT = "cache_hit"
    IN_FLIGHT = "in_flight"
    FETCH = "fetch"


@dataclass(frozen=True)
class LoadClaim(Generic[T]):
    """Outcome of FeedCache.claim().

    ``snapshot`` is set for CACHE_HIT, and for IN_FLIGHT and FETCH when the
    claim was made with ``serve_stale`` and an expired snapshot exists.
    ``generation`` identifies the fetch the caller now owns for FETCH.
    """

    decision: LoadDecision
    snapshot: Optional[List[T]] = None
    generation: int = 0


class FeedCache(Generic[T]):
    """Snapshot, timestamp and in-flight flag for a single feed."""

    def __init__(
        self,
        feed: Feed,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.feed = feed
        self.ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock
        self._lock = threading.RLock()
        self._snapshot: Optional[List[T]] = None
        self._fetched_at_ms: Optional[int] = None
        self._in_flight = False
        # Bumped by clear() so that a fetch started before a reset cannot
        # complete into the fresh state.
        self._generation = 0

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @property
    def snapshot(self) -> Optional[List[T]]:
        with self._lock:
            return self._snapshot

    @property
    def fetched_at_ms(self) -> Optional[int]:
        with self._lock:
            return self._fetched_at_ms

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def _is_valid_locked(self) -> bool:
        if self._snapshot is None or self._fetched_at_ms is None:
            return False
        return self._now_ms() - self._fetched_at_ms < self.ttl_ms

    def is_valid(self) -> bool:
        with self._lock:
            return self._is_valid_locked()

    def valid_snapshot(self) -> Optional[List[T]]:
        """Return the snapshot while it is within the TTL, otherwise None."""
        with self._lock:
            return self._snapshot if self._is_valid_locked() else None

    def fallback_snapshot(self) -> Optional[List[T]]:
        """Return the snapshot regardless of age."""
        with self._lock:
            return self._snapshot

    def age_minutes(self) -> int:
        """Whole minutes since the snapshot was taken, -1 when there is none."""
        with self._lock:
            if self._snapshot is None or self._fetched_at_ms is None:
                return -1
            return (self._now_ms() - self._fetched_at_ms) // 60_000

    def claim(self, *, serve_stale: bool = False) -> LoadClaim[T]:
        """Decide what a load request should do and claim the fetch if needed.

        With ``serve_stale`` an expired snapshot is handed back alongside the
        IN_FLIGHT or FETCH decision.
        """
        with self._lock:
            if self._is_valid_locked():
                return LoadClaim(LoadDecision.CACHE_HIT, snapshot=self._snapshot)
            stale = self._snapshot if serve_stale else None
            if self._in_flight:
                return LoadClaim(LoadDecision.IN_FLIGHT, snapshot=stale)
            self._in_flight = True
            return LoadClaim(LoadDecision.FETCH, snapshot=stale, generation=self._generation)

    def is_current(self, generation: int) -> bool:
        """True while no clear() happened since ``generation`` was claimed."""
        with self._lock:
            return generation == self._generation

    def complete(self, generation: int, snapshot: Optional[List[T]] = None) -> bool:
        """Finish the fetch identified by ``generation``.

        Stores ``snapshot`` when given and clears the in-flight flag. Returns
        False without touching anything if the cache was cleared after the
        fetch was claimed.
        """
        with self._lock:
            if generation != self._generation:
                return False
            if snapshot is not None:
                self._snapshot = list(snapshot)
                self._fetched_at_ms = self._now_ms()
            self._in_flight = False
            return True

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None
            self._fetched_at_ms = None
            self._in_flight = False
            self._generation += 1

    def update_where(self, predicate: Callable[[T], bool], mutate: Callable[[T], None]) -> int:
        """Apply ``mutate`` in place to every snapshot item matching ``predicate``."""
        with self._lock:
            if self._snapshot is None:
                return 0
            matched = 0
            for item in self._snapshot:
                if predicate(item):
                    mutate(item)
                    matched += 1
            return matched
