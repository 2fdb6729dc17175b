"""
OTP Store

Two independent expiring caches keyed by user id:

- ``codes``: the pending one-time code (default 10,000 entries, 5 minutes)
- ``requests``: how many codes were issued in the current window
  (default 10,000 entries, 15 minutes)

Expiry is absolute and write-based: every ``put`` (including the one made by
``increment_below``) restarts the entry's TTL; reads never extend it.

Two backends share the async ``ExpiringCache`` interface:

- ``MemoryCache``: in-process, size-bounded LRU guarded by a lock
- ``RedisCache``: shared across API workers; TTL enforced by Redis and the
  request counter claimed with a Lua script
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from redis.asyncio import Redis

from daanbantayan.core.config import Settings

logger = logging.getLogger(__name__)


class ExpiringCache(ABC):
    """Async key/value cache whose entries expire a fixed time after writing."""

    ttl_seconds: int

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the live value for ``key``; absent or expired reads as None."""

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Store ``value`` and restart the entry's TTL."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    async def pop(self, key: str) -> str | None:
        """Atomically remove ``key`` and return its live value, if any."""

    @abstractmethod
    async def increment_below(self, key: str, limit: int) -> int | None:
        """
        Atomically increment the integer at ``key`` unless it already reached
        ``limit``.

        Returns:
            The new count, or None when the limit was already reached (the
            stored value and its TTL are left untouched in that case)
        """

    async def purge_expired(self) -> int:
        """Drop expired entries eagerly. Returns how many were removed."""
        return 0


class MemoryCache(ExpiringCache):
    """
    In-process cache with LRU eviction and write-based expiry.

    All operations hold a ``threading.Lock``, so a single instance is safe to
    share between the event loop and worker threads.
    """

    def __init__(
        self,
        ttl_seconds: int,
        max_size: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0 or max_size <= 0:
            raise ValueError("ttl_seconds and max_size must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _get_locked(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def _put_locked(self, key: str, value: str) -> None:
        self._entries[key] = (value, self._clock() + self.ttl_seconds)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted least recently used cache entry: {evicted}")

    async def get(self, key: str) -> str | None:
        with self._lock:
            return self._get_locked(key)

    async def put(self, key: str, value: str) -> None:
        with self._lock:
            self._put_locked(key, value)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    async def pop(self, key: str) -> str | None:
        with self._lock:
            value = self._get_locked(key)
            self._entries.pop(key, None)
            return value

    async def increment_below(self, key: str, limit: int) -> int | None:
        with self._lock:
            current = int(self._get_locked(key) or 0)
            if current >= limit:
                return None
            self._put_locked(key, str(current + 1))
            return current + 1

    async def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
            return len(expired)


# KEYS[1] = counter key, ARGV[1] = limit, ARGV[2] = ttl seconds
_INCREMENT_BELOW_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current >= tonumber(ARGV[1]) then
    return -1
end
redis.call('SET', KEYS[1], current + 1, 'EX', ARGV[2])
return current + 1
"""


class RedisCache(ExpiringCache):
    """Redis-backed cache. Keys are prefixed with ``namespace``."""

    def __init__(self, client: Redis, namespace: str, ttl_seconds: int):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.client = client
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    @staticmethod
    def _decode(value: str | bytes | None) -> str | None:
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def get(self, key: str) -> str | None:
        return self._decode(await self.client.get(self._key(key)))

    async def put(self, key: str, value: str) -> None:
        await self.client.set(self._key(key), value, ex=self.ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def pop(self, key: str) -> str | None:
        return self._decode(await self.client.getdel(self._key(key)))

    async def increment_below(self, key: str, limit: int) -> int | None:
        result = await self.client.eval(
            _INCREMENT_BELOW_SCRIPT, 1, self._key(key), limit, self.ttl_seconds
        )
        count = int(result)
        return None if count < 0 else count


@dataclass
class OtpStore:
    """The code cache and the request-count cache used by the OTP service."""

    codes: ExpiringCache
    requests: ExpiringCache

    @classmethod
    def in_memory(
        cls,
        code_ttl_seconds: int = 300,
        code_max_size: int = 10_000,
        request_window_seconds: int = 900,
        request_max_size: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> "OtpStore":
        return cls(
            codes=MemoryCache(code_ttl_seconds, code_max_size, clock=clock),
            requests=MemoryCache(request_window_seconds, request_max_size, clock=clock),
        )

    @classmethod
    def redis(
        cls,
        client: Redis,
        code_ttl_seconds: int = 300,
        request_window_seconds: int = 900,
    ) -> "OtpStore":
        return cls(
            codes=RedisCache(client, "otp:code", code_ttl_seconds),
            requests=RedisCache(client, "otp:requests", request_window_seconds),
        )

    @classmethod
    def from_settings(cls, cfg: Settings, redis_client: Redis | None = None) -> "OtpStore":
        """
        Build the backend selected by ``otp_store_backend``.

        Raises:
            RuntimeError: If the Redis backend is selected without a client
        """
        if cfg.otp_store_backend == "redis":
            if redis_client is None:
                raise RuntimeError("otp_store_backend=redis requires a Redis connection")
            logger.info("Using Redis OTP store")
            return cls.redis(
                redis_client,
                code_ttl_seconds=cfg.otp_ttl_seconds,
                request_window_seconds=cfg.otp_request_window_seconds,
            )

        logger.info("Using in-memory OTP store")
        return cls.in_memory(
            code_ttl_seconds=cfg.otp_ttl_seconds,
            code_max_size=cfg.otp_cache_max_size,
            request_window_seconds=cfg.otp_request_window_seconds,
            request_max_size=cfg.otp_request_cache_max_size,
        )

    async def purge_expired(self) -> int:
        return await self.codes.purge_expired() + await self.requests.purge_expired()
