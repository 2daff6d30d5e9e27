"""
Unit tests for NewsService load, refresh and fallback behaviour.

The feed client and the article store are mocked; persistence against a real
database is covered by the integration tests.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from newsreader.app.core.config import Settings
from newsreader.app.db.models import CachedArticle
from newsreader.app.feeds.base import FeedClient, ResponseError, TransportError
from newsreader.app.models import Article, ArticleBatch
from newsreader.app.repositories.news_store import NewsStore, PersistenceError
from newsreader.app.services.news_service import NO_ARTICLES_MESSAGE, NewsService
from newsreader.app.sync.cache import Feed
from newsreader.app.sync.result import LOADING, Error, Success


class FakeClock:
    def __init__(self, now: float = 10_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance_minutes(self, minutes: float) -> None:
        self.now += minutes * 60


def make_batch(count: int, prefix: str = "Story") -> ArticleBatch:
    return ArticleBatch(
        total_results=count,
        articles=[
            Article(title=f"{prefix} {i}", url=f"https://example.com/{i}", published_at=f"2025-07-21T0{i % 10}:00:00Z")
            for i in range(count)
        ],
    )


def make_client(headlines=None, topic=None) -> MagicMock:
    client = MagicMock(spec=FeedClient)
    client.fetch_headlines = AsyncMock(return_value=make_batch(3) if headlines is None else headlines)
    client.fetch_topic = AsyncMock(return_value=make_batch(3, prefix="Topic") if topic is None else topic)
    client.aclose = AsyncMock()
    return client


def make_store() -> MagicMock:
    store = MagicMock(spec=NewsStore)
    store.exists_bookmarked = AsyncMock(return_value=False)
    store.replace_headlines = AsyncMock(return_value=0)
    store.upsert = AsyncMock()
    store.update = AsyncMock(return_value=1)
    store.aclose = AsyncMock()
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        cache_ttl_seconds=300,
        topic_query="technology",
        topic_language="en",
        topic_exclude_domains="example.org",
        topic_sort_by="publishedAt",
    )


def make_service(client, store, settings, clock) -> NewsService:
    return NewsService(client, store, settings=settings, clock=clock)


def record(service: NewsService, feed: Feed) -> list:
    received = []
    service.channel(feed).subscribe(received.append)
    return received


class TestRequestLoad:

    @pytest.mark.asyncio
    async def test_first_load_publishes_loading_then_success(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        received = record(service, Feed.HEADLINE)

        task = service.request_load(Feed.HEADLINE)
        assert received == [LOADING]
        await task

        assert len(received) == 2
        assert isinstance(received[1], Success)
        assert [r.title for r in received[1].data] == ["Story 0", "Story 1", "Story 2"]
        assert all(isinstance(r, CachedArticle) for r in received[1].data)
        assert service.caches[Feed.HEADLINE].in_flight is False

    @pytest.mark.asyncio
    async def test_ttl_window_scenario(self, settings, clock):
        client, store = make_client(headlines=make_batch(10)), make_store()
        service = make_service(client, store, settings, clock)
        await service.request_load(Feed.HEADLINE)
        first = service.channel(Feed.HEADLINE).value.data
        received = record(service, Feed.HEADLINE)

        clock.advance_minutes(4)
        assert service.request_load(Feed.HEADLINE) is None
        assert received[-1] == Success(first)
        assert len(received[-1].data) == 10
        assert client.fetch_headlines.await_count == 1

        clock.advance_minutes(2)
        task = service.request_load(Feed.HEADLINE)
        assert received[-1] is LOADING
        await task
        assert client.fetch_headlines.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_requests_fetch_once(self, settings, clock):
        gate = asyncio.Event()
        client, store = make_client(), make_store()

        async def slow_headlines():
            await gate.wait()
            return make_batch(2)

        client.fetch_headlines.side_effect = slow_headlines
        service = make_service(client, store, settings, clock)

        first = service.request_load(Feed.HEADLINE)
        second = service.request_load(Feed.HEADLINE)
        await asyncio.sleep(0)
        third = service.request_load(Feed.HEADLINE)

        assert first is not None
        assert second is None
        assert third is None

        gate.set()
        await first

        assert client.fetch_headlines.await_count == 1
        assert isinstance(service.channel(Feed.HEADLINE).value, Success)

    @pytest.mark.asyncio
    async def test_feeds_are_independent(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)

        await service.request_load(Feed.HEADLINE)
        task = service.request_load(Feed.GENERAL)

        assert task is not None
        await task
        assert client.fetch_topic.await_count == 1

    @pytest.mark.asyncio
    async def test_accepts_feed_names(self, settings, clock):
        service = make_service(make_client(), make_store(), settings, clock)

        await service.request_load("general")

        assert isinstance(service.channel("general").value, Success)


class TestHeadlinePersistence:

    @pytest.mark.asyncio
    async def test_bookmark_state_applied_by_store(self, settings, clock):
        client, store = make_client(), make_store()
        current = []

        async def replace(records, *, is_current):
            current.append(is_current())
            for item in records:
                item.is_bookmarked = item.title == "Story 1"
            return len(records)

        store.replace_headlines.side_effect = replace
        service = make_service(client, store, settings, clock)

        await service.request_load(Feed.HEADLINE)

        records = service.channel(Feed.HEADLINE).value.data
        assert [r.is_bookmarked for r in records] == [False, True, False]
        assert current == [True]
        assert store.replace_headlines.await_args.args[0] == records
        store.exists_bookmarked.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_persistence_failure_still_succeeds(self, settings, clock):
        client, store = make_client(), make_store()
        store.replace_headlines.side_effect = PersistenceError("disk I/O error")
        service = make_service(client, store, settings, clock)

        await service.request_load(Feed.HEADLINE)

        result = service.channel(Feed.HEADLINE).value
        assert isinstance(result, Success)
        assert [r.is_bookmarked for r in result.data] == [False, False, False]
        assert service.is_cache_valid(Feed.HEADLINE) is True

    @pytest.mark.asyncio
    async def test_general_feed_is_not_persisted(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)

        await service.request_load(Feed.GENERAL)

        store.replace_headlines.assert_not_awaited()
        store.exists_bookmarked.assert_not_awaited()
        result = service.channel(Feed.GENERAL).value
        assert all(isinstance(item, Article) for item in result.data)
        client.fetch_topic.assert_awaited_once_with(
            query="technology",
            language="en",
            exclude_domain="example.org",
            sort_by="publishedAt",
        )


class TestFailures:

    @pytest.mark.asyncio
    async def test_response_error_publishes_server_message(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        await service.request_load(Feed.HEADLINE)
        snapshot = service.caches[Feed.HEADLINE].snapshot
        clock.advance_minutes(10)
        client.fetch_headlines.side_effect = ResponseError("rate limited", status_code=500)

        await service.request_load(Feed.HEADLINE)

        assert service.channel(Feed.HEADLINE).value == Error("rate limited")
        assert service.caches[Feed.HEADLINE].snapshot == snapshot
        assert service.caches[Feed.HEADLINE].in_flight is False

    @pytest.mark.asyncio
    async def test_transport_error_without_cache(self, settings, clock):
        client, store = make_client(), make_store()
        client.fetch_headlines.side_effect = TransportError("connection refused")
        service = make_service(client, store, settings, clock)

        await service.request_load(Feed.HEADLINE)

        assert service.channel(Feed.HEADLINE).value == Error("connection refused")
        assert service.caches[Feed.HEADLINE].in_flight is False

    @pytest.mark.asyncio
    async def test_transport_error_falls_back_to_expired_snapshot(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        await service.request_load(Feed.GENERAL)
        stale = service.caches[Feed.GENERAL].snapshot
        clock.advance_minutes(6)
        client.fetch_topic.side_effect = TransportError("timed out")

        await service.request_load(Feed.GENERAL)

        assert service.channel(Feed.GENERAL).value == Success(stale)
        assert service.is_cache_valid(Feed.GENERAL) is False

    @pytest.mark.asyncio
    async def test_empty_batch_leaves_cache_untouched(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        await service.request_load(Feed.GENERAL)
        snapshot = service.caches[Feed.GENERAL].snapshot
        clock.advance_minutes(6)
        client.fetch_topic.return_value = ArticleBatch(articles=[])

        await service.request_load(Feed.GENERAL)

        assert service.channel(Feed.GENERAL).value == Error(NO_ARTICLES_MESSAGE)
        assert service.caches[Feed.GENERAL].snapshot == snapshot

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_error(self, settings, clock):
        client, store = make_client(), make_store()
        client.fetch_headlines.side_effect = KeyError("articles")
        service = make_service(client, store, settings, clock)

        await service.request_load(Feed.HEADLINE)

        assert isinstance(service.channel(Feed.HEADLINE).value, Error)
        assert service.caches[Feed.HEADLINE].in_flight is False


class TestRefresh:

    @pytest.mark.asyncio
    async def test_refresh_bypasses_valid_cache(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        await service.request_load(Feed.HEADLINE)

        task = service.refresh(Feed.HEADLINE)

        assert task is not None
        await task
        assert client.fetch_headlines.await_count == 2

    @pytest.mark.asyncio
    async def test_refresh_drops_fallback_snapshot(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        await service.request_load(Feed.HEADLINE)
        client.fetch_headlines.side_effect = TransportError("connection refused")

        await service.refresh(Feed.HEADLINE)

        assert service.channel(Feed.HEADLINE).value == Error("connection refused")

    @pytest.mark.asyncio
    async def test_fetch_started_before_refresh_is_discarded(self, settings, clock):
        gate = asyncio.Event()
        client, store = make_client(), make_store()
        calls = []

        async def headlines():
            calls.append(len(calls))
            if len(calls) == 1:
                await gate.wait()
                return make_batch(1, prefix="Old")
            return make_batch(1, prefix="New")

        client.fetch_headlines.side_effect = headlines
        service = make_service(client, store, settings, clock)
        received = record(service, Feed.HEADLINE)

        old = service.request_load(Feed.HEADLINE)
        await asyncio.sleep(0)
        new = service.refresh(Feed.HEADLINE)
        await new
        gate.set()
        await old

        assert service.caches[Feed.HEADLINE].snapshot[0].title == "New 0"
        assert received[-1].data[0].title == "New 0"
        assert not any(
            isinstance(item, Success) and item.data[0].title == "Old 0" for item in received
        )
        assert service.caches[Feed.HEADLINE].in_flight is False
        store.replace_headlines.assert_awaited_once()
        assert store.replace_headlines.await_args.args[0][0].title == "New 0"

    @pytest.mark.asyncio
    async def test_refresh_all_loads_both_feeds(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)

        pending = service.refresh_all()
        await asyncio.gather(*pending.values())

        assert set(pending) == {Feed.HEADLINE, Feed.GENERAL}
        assert client.fetch_headlines.await_count == 1
        assert client.fetch_topic.await_count == 1


class TestStaleWhileRevalidate:

    @pytest.mark.asyncio
    async def test_expired_snapshot_published_before_fetch(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        await service.request_load(Feed.GENERAL)
        stale = service.caches[Feed.GENERAL].snapshot
        clock.advance_minutes(6)
        client.fetch_topic.return_value = make_batch(2, prefix="Fresh")
        received = record(service, Feed.GENERAL)

        task = service.request_load(Feed.GENERAL, stale_while_revalidate=True)

        assert received == [Success(stale), Success(stale)]
        await task
        assert LOADING not in received
        assert [a.title for a in received[-1].data] == ["Fresh 0", "Fresh 1"]
        assert client.fetch_topic.await_count == 2

    @pytest.mark.asyncio
    async def test_valid_snapshot_served_without_fetch(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        await service.request_load(Feed.GENERAL)
        clock.advance_minutes(2)

        assert service.request_load(Feed.GENERAL, stale_while_revalidate=True) is None
        assert client.fetch_topic.await_count == 1
        assert isinstance(service.channel(Feed.GENERAL).value, Success)

    @pytest.mark.asyncio
    async def test_without_snapshot_publishes_loading(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        received = record(service, Feed.HEADLINE)

        await service.request_load(Feed.HEADLINE, stale_while_revalidate=True)

        assert received[0] is LOADING
        assert isinstance(received[1], Success)

    @pytest.mark.asyncio
    async def test_failure_suppressed_while_snapshot_shown(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        await service.request_load(Feed.HEADLINE)
        stale = service.caches[Feed.HEADLINE].snapshot
        clock.advance_minutes(6)
        client.fetch_headlines.side_effect = ResponseError("rate limited", status_code=429)
        received = record(service, Feed.HEADLINE)

        await service.request_load(Feed.HEADLINE, stale_while_revalidate=True)

        assert not any(isinstance(item, Error) for item in received)
        assert service.channel(Feed.HEADLINE).value == Success(stale)
        assert service.caches[Feed.HEADLINE].snapshot == stale
        assert service.caches[Feed.HEADLINE].in_flight is False

    @pytest.mark.asyncio
    async def test_failure_published_when_nothing_shown(self, settings, clock):
        client, store = make_client(), make_store()
        client.fetch_topic.side_effect = TransportError("connection refused")
        service = make_service(client, store, settings, clock)

        await service.request_load(Feed.GENERAL, stale_while_revalidate=True)

        assert service.channel(Feed.GENERAL).value == Error("connection refused")

    @pytest.mark.asyncio
    async def test_joining_revalidation_republishes_snapshot(self, settings, clock):
        gate = asyncio.Event()
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        await service.request_load(Feed.GENERAL)
        stale = service.caches[Feed.GENERAL].snapshot
        clock.advance_minutes(6)

        async def slow_topic(**_kwargs):
            await gate.wait()
            return make_batch(1, prefix="Fresh")

        client.fetch_topic.side_effect = slow_topic
        first = service.request_load(Feed.GENERAL, stale_while_revalidate=True)
        received = record(service, Feed.GENERAL)
        second = service.request_load(Feed.GENERAL, stale_while_revalidate=True)

        assert second is None
        assert received == [Success(stale), Success(stale)]

        gate.set()
        await first
        assert client.fetch_topic.await_count == 2
        assert received[-1].data[0].title == "Fresh 0"


class TestCacheIntrospection:

    @pytest.mark.asyncio
    async def test_get_cached_and_age(self, settings, clock):
        service = make_service(make_client(), make_store(), settings, clock)
        assert service.get_cached(Feed.GENERAL) is None
        assert service.cache_age_minutes(Feed.GENERAL) == -1

        await service.request_load(Feed.GENERAL)
        clock.advance_minutes(3)

        assert len(service.get_cached(Feed.GENERAL)) == 3
        assert service.cache_age_minutes(Feed.GENERAL) == 3

        clock.advance_minutes(3)
        assert service.get_cached(Feed.GENERAL) is None

    @pytest.mark.asyncio
    async def test_clear_cache_does_not_fetch(self, settings, clock):
        client = make_client()
        service = make_service(client, make_store(), settings, clock)
        await service.request_load(Feed.GENERAL)

        service.clear_cache(Feed.GENERAL)

        assert service.get_cached(Feed.GENERAL) is None
        assert client.fetch_topic.await_count == 1

    @pytest.mark.asyncio
    async def test_aclose_waits_and_releases(self, settings, clock):
        client, store = make_client(), make_store()
        service = make_service(client, store, settings, clock)
        service.request_load(Feed.HEADLINE)

        await service.aclose()

        assert isinstance(service.channel(Feed.HEADLINE).value, Success)
        client.aclose.assert_awaited_once()
        store.aclose.assert_awaited_once()
