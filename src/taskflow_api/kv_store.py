"""
Expiring key-value stores.

Used for the short lived security state that should not live in the relational db:
- the token blacklist
- failed login counters and account lock markers

Every entry is written with a TTL and is dropped by the store once it expires,
so no background sweep is needed in the API.

RedisExpiringStore is what deployed environments use (shared by all API replicas).
InMemoryExpiringStore is used when REDIS_URL is not set, e.g. for local development and tests.
"""

import heapq
import logging
import threading
import time
from abc import ABC, abstractmethod

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class ExpiringStore(ABC):
    """Interface for an async key-value store where every entry has a time to live."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Set key only if it does not exist yet, atomically. Returns True if this call wrote the key."""

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def delete(self, *keys: str) -> None: ...

    @abstractmethod
    async def exists(self, key: str) -> bool: ...

    @abstractmethod
    async def increment(self, key: str, ttl_seconds: int) -> int:
        """Atomically add 1 to the counter at key (starting from 0) and reset its TTL. Returns the new value."""

    async def close(self) -> None:
        return None


class RedisExpiringStore(ExpiringStore):
    """ExpiringStore backed by Redis, all ops are single key commands so no locking is needed."""

    def __init__(self, client: Redis):
        self.redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisExpiringStore":
        return cls(Redis.from_url(url, decode_responses=True))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.redis.set(key, value, ex=ttl_seconds)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        return bool(await self.redis.set(key, value, ex=ttl_seconds, nx=True))

    async def get(self, key: str) -> str | None:
        value = await self.redis.get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def delete(self, *keys: str) -> None:
        if keys:
            await self.redis.delete(*keys)

    async def exists(self, key: str) -> bool:
        return bool(await self.redis.exists(key))

    async def increment(self, key: str, ttl_seconds: int) -> int:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl_seconds)
            new_value, _ = await pipe.execute()
        return int(new_value)

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        await self.redis.aclose()


class InMemoryExpiringStore(ExpiringStore):
    """
    Process local ExpiringStore.

    Entries hold a monotonic deadline. Reads ignore expired entries, and every write first drops all
    entries whose deadline has passed (found via a min-heap of deadlines), so keys that are never read
    again do not pile up.
    Only valid for a single process, state is lost on restart.
    """

    def __init__(self):
        self._data: dict[str, tuple[str, float]] = {}
        self._deadlines: list[tuple[float, str]] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def _live_value(self, key: str) -> str | None:
        """Must be called with the lock held."""
        entry = self._data.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if deadline <= time.monotonic():
            del self._data[key]
            return None
        return value

    def _purge_expired(self, now: float) -> None:
        """
        Must be called with the lock held.

        A heap item is stale if its key was rewritten with a later deadline (or deleted),
        in which case only the heap item is discarded.
        """
        while self._deadlines and self._deadlines[0][0] <= now:
            _, key = heapq.heappop(self._deadlines)
            entry = self._data.get(key)
            if entry is not None and entry[1] <= now:
                del self._data[key]

    def _write(self, key: str, value: str, ttl_seconds: int) -> None:
        """Must be called with the lock held."""
        now = time.monotonic()
        self._purge_expired(now)
        deadline = now + ttl_seconds
        self._data[key] = (value, deadline)
        heapq.heappush(self._deadlines, (deadline, key))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        _check_ttl(ttl_seconds)
        with self._lock:
            self._write(key, str(value), ttl_seconds)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        _check_ttl(ttl_seconds)
        with self._lock:
            if self._live_value(key) is not None:
                return False
            self._write(key, str(value), ttl_seconds)
            return True

    async def get(self, key: str) -> str | None:
        with self._lock:
            return self._live_value(key)

    async def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    async def exists(self, key: str) -> bool:
        with self._lock:
            return self._live_value(key) is not None

    async def increment(self, key: str, ttl_seconds: int) -> int:
        _check_ttl(ttl_seconds)
        with self._lock:
            current = self._live_value(key)
            new_value = int(current) + 1 if current is not None else 1
            self._write(key, str(new_value), ttl_seconds)
            return new_value


def _check_ttl(ttl_seconds: int) -> None:
    if ttl_seconds <= 0:
        raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")


def create_expiring_store(redis_url: str | None) -> ExpiringStore:
    """Create the store used by the API, Redis if a url is given else in-process."""
    if redis_url:
        logger.info("Using Redis for token blacklist and login lockout state.")
        return RedisExpiringStore.from_url(redis_url)

    logger.warning(
        "REDIS_URL not set, using in-process store for token blacklist and login lockout state. "
        "This is not shared between API replicas."
    )
    return InMemoryExpiringStore()
