"""
Tests for the paste stores.

The contract tests run against both the in-memory and the Redis store.
"""
import asyncio
import threading
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from conftest import T0
from vanishpaste.config import Settings
from vanishpaste.database import (
    InMemoryPasteStore,
    RedisPasteStore,
    connect_store,
)
from vanishpaste.exceptions import DuplicateIdError, StorageError


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_returns_record(self, store):
        record = await store.create("abc", "hello", created_at=T0, max_views=3)
        assert record.id == "abc"
        assert record.remaining_views == 3
        assert record.max_views == 3
        assert record.expires_at is None

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, store):
        await store.create("abc", "first", created_at=T0)
        with pytest.raises(DuplicateIdError):
            await store.create("abc", "second", created_at=T0)

        consumed = await store.consume("abc", T0)
        assert consumed.content == "first"


class TestConsume:

    @pytest.mark.asyncio
    async def test_missing_paste(self, store):
        assert await store.consume("nope", T0) is None

    @pytest.mark.asyncio
    async def test_unlimited_paste_reads_forever(self, store):
        await store.create("abc", "hello", created_at=T0)
        for days in range(5):
            consumed = await store.consume("abc", T0 + timedelta(days=days * 365))
            assert consumed.content == "hello"
            assert consumed.remaining_views is None
            assert consumed.expires_at is None

    @pytest.mark.asyncio
    async def test_single_view_paste(self, store):
        await store.create("abc", "secret", created_at=T0, max_views=1)

        first = await store.consume("abc", T0)
        assert first.content == "secret"
        assert first.remaining_views == 0

        assert await store.consume("abc", T0 + timedelta(seconds=1)) is None

    @pytest.mark.asyncio
    async def test_remaining_views_count_down(self, store):
        await store.create("abc", "x", created_at=T0, max_views=3)
        seen = [(await store.consume("abc", T0)).remaining_views for _ in range(3)]
        assert seen == [2, 1, 0]
        assert await store.consume("abc", T0) is None

    @pytest.mark.asyncio
    async def test_expiry(self, store):
        expires_at = T0 + timedelta(seconds=10)
        await store.create("abc", "x", created_at=T0, expires_at=expires_at, max_views=100)

        consumed = await store.consume("abc", T0 + timedelta(seconds=9))
        assert consumed is not None
        assert consumed.expires_at == expires_at

        assert await store.consume("abc", T0 + timedelta(seconds=11)) is None

    @pytest.mark.asyncio
    async def test_expired_read_does_not_spend_views(self, store):
        await store.create(
            "abc", "x", created_at=T0, expires_at=T0 + timedelta(seconds=10), max_views=2
        )
        assert await store.consume("abc", T0 + timedelta(seconds=20)) is None
        # An earlier reference time still sees the untouched budget
        consumed = await store.consume("abc", T0)
        assert consumed.remaining_views == 1

    @pytest.mark.asyncio
    async def test_content_round_trips_exactly(self, store):
        content = "línea 1\n\t<b>&amp;</b> 'quoted' \"double\" ☃\r\n"
        await store.create("abc", content, created_at=T0)
        consumed = await store.consume("abc", T0)
        assert consumed.content == content

    @pytest.mark.asyncio
    async def test_concurrent_consumers_single_winner(self, store):
        await store.create("abc", "only once", created_at=T0, max_views=1)

        results = await asyncio.gather(*(store.consume("abc", T0) for _ in range(50)))

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        assert winners[0].content == "only once"
        assert winners[0].remaining_views == 0

    @pytest.mark.asyncio
    async def test_concurrent_consumers_exact_budget(self, store):
        await store.create("abc", "x", created_at=T0, max_views=7)

        results = await asyncio.gather(*(store.consume("abc", T0) for _ in range(40)))

        winners = [r for r in results if r is not None]
        assert len(winners) == 7
        assert sorted(r.remaining_views for r in winners) == list(range(7))


class TestPurgeInert:

    @pytest.mark.asyncio
    async def test_purges_expired_and_exhausted_only(self, store):
        await store.create("expired", "x", created_at=T0, expires_at=T0 + timedelta(seconds=1))
        await store.create("exhausted", "x", created_at=T0, max_views=1)
        await store.create("alive", "x", created_at=T0, max_views=2)
        await store.create("forever", "x", created_at=T0)
        await store.consume("exhausted", T0)

        purged = await store.purge_inert(T0 + timedelta(seconds=5))

        assert purged == 2
        assert await store.consume("alive", T0) is not None
        assert await store.consume("forever", T0) is not None
        assert await store.consume("expired", T0) is None


class TestInMemoryStore:

    def test_threads_race_for_last_view(self, memory_store):
        asyncio.run(memory_store.create("abc", "x", created_at=T0, max_views=1))
        results = []
        barrier = threading.Barrier(16)

        def reader():
            barrier.wait()
            results.append(asyncio.run(memory_store.consume("abc", T0)))

        threads = [threading.Thread(target=reader) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r is not None) == 1
        assert memory_store.store.get("abc").remaining_views == 0

    @pytest.mark.asyncio
    async def test_is_healthy(self, memory_store):
        assert await memory_store.is_healthy() is True


class TestRedisStore:

    @pytest.mark.asyncio
    async def test_row_layout(self, redis_store):
        await redis_store.create(
            "abc", "hello", created_at=T0, expires_at=T0 + timedelta(seconds=10), max_views=2
        )
        data = await redis_store.redis.hgetall("paste:abc")
        assert data == {
            "content": "hello",
            "created_at": str(int(T0.timestamp() * 1000)),
            "expires_at": str(int(T0.timestamp() * 1000) + 10000),
            "max_views": "2",
            "remaining_views": "2",
        }

    @pytest.mark.asyncio
    async def test_unlimited_paste_stores_no_counter(self, redis_store):
        await redis_store.create("abc", "hello", created_at=T0)
        data = await redis_store.redis.hgetall("paste:abc")
        assert "max_views" not in data
        assert "remaining_views" not in data
        assert "expires_at" not in data

    @pytest.mark.asyncio
    async def test_counter_never_goes_negative(self, redis_store):
        await redis_store.create("abc", "x", created_at=T0, max_views=1)
        for _ in range(5):
            await redis_store.consume("abc", T0)
        assert await redis_store.redis.hget("paste:abc", "remaining_views") == "0"

    @pytest.mark.asyncio
    async def test_unhealthy_when_disconnected(self, redis_store, fake_server):
        fake_server.connected = False
        assert await redis_store.is_healthy() is False

    @pytest.mark.asyncio
    async def test_storage_failure_surfaces(self, redis_store, fake_server):
        fake_server.connected = False
        with pytest.raises(StorageError):
            await redis_store.consume("abc", T0)
        with pytest.raises(StorageError):
            await redis_store.create("abc", "x", created_at=T0)


class TestConnectStore:

    def _unreachable_client(self):
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_falls_back_to_memory(self, monkeypatch):
        monkeypatch.setenv("ALLOW_MEMORY_FALLBACK", "1")
        client = self._unreachable_client()
        with patch("vanishpaste.database.Redis.from_url", return_value=client):
            store = await connect_store(Settings())
        assert isinstance(store, InMemoryPasteStore)
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fails_without_fallback(self, monkeypatch):
        monkeypatch.setenv("ALLOW_MEMORY_FALLBACK", "0")
        with patch("vanishpaste.database.Redis.from_url", return_value=self._unreachable_client()):
            with pytest.raises(StorageError):
                await connect_store(Settings())

    @pytest.mark.asyncio
    async def test_uses_redis_when_reachable(self, monkeypatch):
        monkeypatch.setenv("REDIS_KEY_PREFIX", "p:")
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)
        with patch("vanishpaste.database.Redis.from_url", return_value=client):
            store = await connect_store(Settings())
        assert isinstance(store, RedisPasteStore)
        assert store.key_prefix == "p:"
