"""
Tests for the OTP caches.
"""

import pytest

from daanbantayan.core.config import Settings
from daanbantayan.modules.otp.store import MemoryCache, OtpStore, RedisCache


class TestMemoryCache:
    """In-process cache with write-based expiry."""

    @pytest.mark.asyncio
    async def test_get_returns_value_before_expiry(self, clock):
        cache = MemoryCache(ttl_seconds=300, max_size=10, clock=clock)
        await cache.put("u1", "123456")

        clock.advance(299)

        assert await cache.get("u1") == "123456"

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, clock):
        cache = MemoryCache(ttl_seconds=300, max_size=10, clock=clock)
        await cache.put("u1", "123456")

        clock.advance(300)

        assert await cache.get("u1") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_reads_do_not_extend_ttl(self, clock):
        cache = MemoryCache(ttl_seconds=300, max_size=10, clock=clock)
        await cache.put("u1", "123456")

        clock.advance(200)
        await cache.get("u1")
        clock.advance(100)

        assert await cache.get("u1") is None

    @pytest.mark.asyncio
    async def test_overwrite_restarts_ttl(self, clock):
        cache = MemoryCache(ttl_seconds=300, max_size=10, clock=clock)
        await cache.put("u1", "111111")
        clock.advance(200)
        await cache.put("u1", "222222")
        clock.advance(200)

        assert await cache.get("u1") == "222222"

    @pytest.mark.asyncio
    async def test_least_recently_used_entry_evicted_at_capacity(self, clock):
        cache = MemoryCache(ttl_seconds=300, max_size=2, clock=clock)
        await cache.put("a", "1")
        await cache.put("b", "2")
        await cache.get("a")

        await cache.put("c", "3")

        assert await cache.get("b") is None
        assert await cache.get("a") == "1"
        assert await cache.get("c") == "3"

    @pytest.mark.asyncio
    async def test_delete_missing_key_is_noop(self, clock):
        cache = MemoryCache(ttl_seconds=300, max_size=2, clock=clock)
        await cache.delete("nobody")

    @pytest.mark.asyncio
    async def test_pop_returns_value_once(self, clock):
        cache = MemoryCache(ttl_seconds=300, max_size=2, clock=clock)
        await cache.put("u1", "123456")

        assert await cache.pop("u1") == "123456"
        assert await cache.pop("u1") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_pop_of_expired_entry_is_none(self, clock):
        cache = MemoryCache(ttl_seconds=300, max_size=2, clock=clock)
        await cache.put("u1", "123456")
        clock.advance(300)

        assert await cache.pop("u1") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_increment_below_stops_at_limit(self, clock):
        cache = MemoryCache(ttl_seconds=900, max_size=10, clock=clock)

        counts = [await cache.increment_below("u1", 5) for _ in range(6)]

        assert counts == [1, 2, 3, 4, 5, None]
        assert await cache.get("u1") == "5"

    @pytest.mark.asyncio
    async def test_increment_below_allows_again_after_window(self, clock):
        cache = MemoryCache(ttl_seconds=900, max_size=10, clock=clock)
        for _ in range(5):
            await cache.increment_below("u1", 5)

        clock.advance(900)

        assert await cache.increment_below("u1", 5) == 1

    @pytest.mark.asyncio
    async def test_purge_expired_removes_only_expired(self, clock):
        cache = MemoryCache(ttl_seconds=300, max_size=10, clock=clock)
        await cache.put("old", "1")
        clock.advance(250)
        await cache.put("new", "2")
        clock.advance(60)

        removed = await cache.purge_expired()

        assert removed == 1
        assert len(cache) == 1
        assert await cache.get("new") == "2"

    def test_rejects_non_positive_sizes(self):
        with pytest.raises(ValueError):
            MemoryCache(ttl_seconds=0, max_size=10)


class TestRedisCache:
    """Redis backend commands."""

    @pytest.mark.asyncio
    async def test_put_sets_namespaced_key_with_ttl(self, mock_redis):
        cache = RedisCache(mock_redis, "otp:code", ttl_seconds=300)

        await cache.put("u1", "123456")

        mock_redis.set.assert_awaited_once_with("otp:code:u1", "123456", ex=300)

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self, mock_redis):
        mock_redis.get.return_value = b"123456"
        cache = RedisCache(mock_redis, "otp:code", ttl_seconds=300)

        assert await cache.get("u1") == "123456"
        mock_redis.get.assert_awaited_once_with("otp:code:u1")

    @pytest.mark.asyncio
    async def test_pop_uses_getdel(self, mock_redis):
        mock_redis.getdel.return_value = b"123456"
        cache = RedisCache(mock_redis, "otp:code", ttl_seconds=300)

        assert await cache.pop("u1") == "123456"
        mock_redis.getdel.assert_awaited_once_with("otp:code:u1")
        mock_redis.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_increment_below_runs_script_atomically(self, mock_redis):
        mock_redis.eval.return_value = 3
        cache = RedisCache(mock_redis, "otp:requests", ttl_seconds=900)

        assert await cache.increment_below("u1", 5) == 3

        args = mock_redis.eval.call_args.args
        assert args[1:] == (1, "otp:requests:u1", 5, 900)

    @pytest.mark.asyncio
    async def test_increment_below_reports_limit(self, mock_redis):
        mock_redis.eval.return_value = -1
        cache = RedisCache(mock_redis, "otp:requests", ttl_seconds=900)

        assert await cache.increment_below("u1", 5) is None


class TestOtpStoreFactory:
    def test_in_memory_defaults(self):
        store = OtpStore.in_memory()

        assert store.codes.ttl_seconds == 300
        assert store.requests.ttl_seconds == 900
        assert store.codes.max_size == 10_000
        assert store.requests.max_size == 10_000

    def test_redis_backend_requires_client(self):
        cfg = Settings(_env_file=None, otp_store_backend="redis")

        with pytest.raises(RuntimeError):
            OtpStore.from_settings(cfg)

    def test_redis_backend_uses_configured_ttls(self, mock_redis):
        cfg = Settings(_env_file=None, otp_store_backend="redis", otp_ttl_seconds=120)

        store = OtpStore.from_settings(cfg, redis_client=mock_redis)

        assert isinstance(store.codes, RedisCache)
        assert store.codes.ttl_seconds == 120
