"""
Shared pytest fixtures.

Store tests run against both backends: the in-memory store and the Redis
store on top of fakeredis (with Lua scripting), so no Redis server is needed.
"""
from datetime import datetime, timezone

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient

from vanishpaste.config import Settings
from vanishpaste.database import InMemoryPasteStore, RedisPasteStore
from vanishpaste.main import create_app

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def epoch_ms(value: datetime) -> str:
    return str(int(value.timestamp() * 1000))


@pytest.fixture
def memory_store():
    return InMemoryPasteStore()


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
async def redis_store(fake_server):
    client = fakeredis.FakeAsyncRedis(server=fake_server, decode_responses=True)
    store = RedisPasteStore(client, key_prefix="paste:")
    yield store
    await store.close()


@pytest.fixture(params=["memory", "redis"])
async def store(request, fake_server):
    """Each test using this fixture runs once per storage backend."""
    if request.param == "memory":
        yield InMemoryPasteStore()
        return
    client = fakeredis.FakeAsyncRedis(server=fake_server, decode_responses=True)
    redis_backed = RedisPasteStore(client, key_prefix="paste:")
    yield redis_backed
    await redis_backed.close()


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.setenv("TEST_MODE", "1")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("APP_DOMAIN", "http://paste.test")
    monkeypatch.setenv("SWEEP_INTERVAL_SECONDS", "0")
    return Settings()


@pytest.fixture
def app(settings, memory_store):
    application = create_app(settings)
    application.state.store = memory_store
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client
