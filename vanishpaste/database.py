"""
Paste storage: Redis in production, an in-memory store for development/testing.
Handles paste creation, atomic consume-on-read, housekeeping and health checks.
"""
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from vanishpaste.config import Settings
from vanishpaste.exceptions import DuplicateIdError, StorageError
from vanishpaste.lifecycle import ViewState, decide, is_inert

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PasteRecord:
    """One stored paste."""
    id: str
    content: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    max_views: Optional[int] = None
    remaining_views: Optional[int] = None

    @property
    def view_state(self) -> ViewState:
        return ViewState(expires_at=self.expires_at, remaining_views=self.remaining_views)


@dataclass(frozen=True)
class ConsumedPaste:
    """What a successful consume hands back: content and post-read state."""
    content: str
    remaining_views: Optional[int]
    expires_at: Optional[datetime]


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value) -> datetime:
    return EPOCH + timedelta(milliseconds=int(value))


class PasteStore:
    """Interface shared by the storage backends."""

    backend_name = "abstract"

    async def create(
        self,
        paste_id: str,
        content: str,
        created_at: datetime,
        expires_at: Optional[datetime] = None,
        max_views: Optional[int] = None,
    ) -> PasteRecord:
        """Insert a paste; raise DuplicateIdError if the id is taken."""
        raise NotImplementedError

    async def consume(self, paste_id: str, reference_time: datetime) -> Optional[ConsumedPaste]:
        """Atomically spend one view; None if the paste is not visible."""
        raise NotImplementedError

    async def is_healthy(self) -> bool:
        raise NotImplementedError

    async def purge_inert(self, reference_time: datetime) -> int:
        """Delete pastes that can never be shown again; return how many."""
        raise NotImplementedError

    async def close(self) -> None:
        pass


class InMemoryPasteStore(PasteStore):
    """Process-local store for development/testing (when Redis unavailable).

    A single lock serialises every check-and-mutate, so consume is atomic
    across threads as well as across tasks.
    """

    backend_name = "memory"

    def __init__(self):
        self.store: Dict[str, PasteRecord] = {}
        self._lock = threading.Lock()

    async def create(self, paste_id, content, created_at, expires_at=None, max_views=None):
        record = PasteRecord(
            id=paste_id,
            content=content,
            created_at=created_at,
            expires_at=expires_at,
            max_views=max_views,
            remaining_views=max_views,
        )
        with self._lock:
            if paste_id in self.store:
                raise DuplicateIdError(paste_id)
            self.store[paste_id] = record
        return record

    async def consume(self, paste_id, reference_time):
        with self._lock:
            record = self.store.get(paste_id)
            if record is None:
                return None
            decision = decide(record.view_state, reference_time)
            if not decision.available:
                return None
            record = replace(record, remaining_views=decision.next_state.remaining_views)
            self.store[paste_id] = record
        return ConsumedPaste(
            content=record.content,
            remaining_views=record.remaining_views,
            expires_at=record.expires_at,
        )

    async def is_healthy(self) -> bool:
        return True

    async def purge_inert(self, reference_time):
        with self._lock:
            inert = [
                paste_id
                for paste_id, record in self.store.items()
                if is_inert(record.view_state, reference_time)
            ]
            for paste_id in inert:
                del self.store[paste_id]
        return len(inert)


# Hash fields: content, created_at, expires_at, max_views, remaining_views.
# Timestamps are epoch milliseconds. Optional fields are left unset when absent.

# KEYS[1] = paste key, ARGV = flat field/value pairs
CREATE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return 0
end
for i = 1, #ARGV, 2 do
    redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
end
return 1
"""

# KEYS[1] = paste key, ARGV[1] = reference time (epoch ms)
# Returns nil when not visible, else {content, expires_at or '', remaining or ''}
CONSUME_SCRIPT = """
local fields = redis.call('HMGET', KEYS[1], 'content', 'expires_at', 'remaining_views')
local content = fields[1]
if not content then
    return nil
end
local now = tonumber(ARGV[1])
local expires_at = fields[2]
if expires_at and tonumber(expires_at) <= now then
    return nil
end
local remaining = ''
if fields[3] then
    if tonumber(fields[3]) <= 0 then
        return nil
    end
    remaining = string.format('%d', redis.call('HINCRBY', KEYS[1], 'remaining_views', -1))
end
return {content, expires_at or '', remaining}
"""

# KEYS[1] = paste key, ARGV[1] = reference time (epoch ms)
PURGE_SCRIPT = """
local fields = redis.call('HMGET', KEYS[1], 'expires_at', 'remaining_views')
local now = tonumber(ARGV[1])
local expired = fields[1] and tonumber(fields[1]) <= now
local exhausted = fields[2] and tonumber(fields[2]) <= 0
if expired or exhausted then
    redis.call('DEL', KEYS[1])
    return 1
end
return 0
"""


class RedisPasteStore(PasteStore):
    """Paste store on Redis hashes.

    create and consume each run as one server-side script, so the
    visibility check and the decrement can never interleave with another
    client's. The consume script is the storage-side twin of
    lifecycle.decide and must keep the same predicate.
    """

    backend_name = "redis"

    def __init__(self, redis: Redis, key_prefix: str = "paste:"):
        self.redis = redis
        self.key_prefix = key_prefix
        self._create = redis.register_script(CREATE_SCRIPT)
        self._consume = redis.register_script(CONSUME_SCRIPT)
        self._purge = redis.register_script(PURGE_SCRIPT)

    def _key(self, paste_id: str) -> str:
        return f"{self.key_prefix}{paste_id}"

    async def create(self, paste_id, content, created_at, expires_at=None, max_views=None):
        args = ["content", content, "created_at", to_epoch_ms(created_at)]
        if expires_at is not None:
            args += ["expires_at", to_epoch_ms(expires_at)]
        if max_views is not None:
            args += ["max_views", max_views, "remaining_views", max_views]

        try:
            inserted = await self._create(keys=[self._key(paste_id)], args=args)
        except RedisError as e:
            logger.error(f"Error saving paste {paste_id}: {type(e).__name__}: {e}")
            raise StorageError("Failed to save paste") from e

        if not int(inserted):
            raise DuplicateIdError(paste_id)

        return PasteRecord(
            id=paste_id,
            content=content,
            created_at=created_at,
            expires_at=expires_at,
            max_views=max_views,
            remaining_views=max_views,
        )

    async def consume(self, paste_id, reference_time):
        try:
            result = await self._consume(
                keys=[self._key(paste_id)],
                args=[to_epoch_ms(reference_time)],
            )
        except RedisError as e:
            logger.error(f"Error consuming paste {paste_id}: {type(e).__name__}: {e}")
            raise StorageError("Failed to fetch paste") from e

        if not result:
            return None

        content, expires_at, remaining = result
        return ConsumedPaste(
            content=content,
            remaining_views=int(remaining) if remaining != "" else None,
            expires_at=from_epoch_ms(expires_at) if expires_at != "" else None,
        )

    async def is_healthy(self) -> bool:
        """Check if database connection is alive."""
        try:
            await self.redis.ping()
            return True
        except (RedisError, OSError) as e:
            logger.error(f"Health check failed: {e}")
        return False

    async def purge_inert(self, reference_time):
        now_ms = to_epoch_ms(reference_time)
        purged = 0
        try:
            async for key in self.redis.scan_iter(match=f"{self.key_prefix}*"):
                purged += int(await self._purge(keys=[key], args=[now_ms]))
        except RedisError as e:
            logger.error(f"Error purging pastes: {type(e).__name__}: {e}")
            raise StorageError("Failed to purge pastes") from e
        return purged

    async def close(self) -> None:
        await self.redis.aclose()


async def connect_store(settings: Settings) -> PasteStore:
    """
    Build the paste store at startup.

    Connects to Redis and falls back to the in-memory store when Redis is
    unreachable and ALLOW_MEMORY_FALLBACK is set.

    Raises:
        StorageError: If Redis is unreachable and fallback is disabled
    """
    logger.info(f"Attempting to connect to Redis: {settings.REDIS_URL[:30]}...")
    client = Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.error(f"Error connecting to Redis: {type(e).__name__}: {e}")
        await client.aclose()
        if not settings.ALLOW_MEMORY_FALLBACK:
            raise StorageError("Redis is unavailable") from e
        logger.warning("Using in-memory fallback. Data will NOT persist across restarts.")
        return InMemoryPasteStore()

    logger.info("Redis connected successfully")
    return RedisPasteStore(client, key_prefix=settings.REDIS_KEY_PREFIX)
