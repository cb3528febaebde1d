"""Tests for cache.py"""

import asyncio
from datetime import datetime, timezone

import pytest

from technews.core.cache import (
    CacheBackend,
    CacheStatus,
    CacheUnavailableError,
    EnrichmentCache,
    MemoryCacheBackend,
    RedisCacheBackend,
    SQLiteCacheBackend,
    create_cache,
)
from technews.core.settings import Settings
from technews.providers.content_types import EnrichedRecord, MediaLinks


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class DownBackend(CacheBackend):
    """A store that is never ready."""

    name = "down"
    is_ready = False

    async def get(self, key):
        raise AssertionError("get must not be called when not ready")

    async def set_ex(self, key, ttl_seconds, value):
        raise AssertionError("set_ex must not be called when not ready")


class FlakyBackend(CacheBackend):
    """Ready, but every call fails."""

    name = "flaky"
    is_ready = True

    async def get(self, key):
        raise CacheUnavailableError("connection reset")

    async def set_ex(self, key, ttl_seconds, value):
        raise CacheUnavailableError("connection reset")


class SlowBackend(CacheBackend):
    name = "slow"
    is_ready = True

    async def get(self, key):
        await asyncio.sleep(1)

    async def set_ex(self, key, ttl_seconds, value):
        await asyncio.sleep(1)


def _record(content_id: str = "abc123def456") -> EnrichedRecord:
    return EnrichedRecord(
        id=content_id,
        title="A",
        description="B",
        body="C",
        source_url="https://x/1",
        publisher="Reporter",
        published_at=datetime(2025, 5, 1, 8, 30, tzinfo=timezone.utc),
        ingested_at=datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc),
        summary="Summary",
        tags=["#A", "#B"],
        relevance_score=0.8,
        media=MediaLinks(
            featured_image_url="https://img/1",
            related_video_url=None,
            media_justification="fits",
        ),
        context={"geo": {"country": "Ghana", "lat": None}},
    )


@pytest.mark.asyncio
class TestEnrichmentCacheMemory:
    """Tests for EnrichmentCache over the memory backend."""

    async def test_miss(self):
        cache = EnrichmentCache(MemoryCacheBackend())
        lookup = await cache.get("nothing")
        assert lookup.status == CacheStatus.MISS
        assert lookup.hit is False

    async def test_round_trip_preserves_fields(self):
        cache = EnrichmentCache(MemoryCacheBackend())
        record = _record()

        assert await cache.put(record.id, record) is True
        lookup = await cache.get(record.id)

        assert lookup.hit is True
        assert lookup.record == record
        assert lookup.record.to_dict() == record.to_dict()

    async def test_entry_expires(self):
        clock = FakeClock()
        cache = EnrichmentCache(MemoryCacheBackend(clock=clock))
        record = _record()
        await cache.put(record.id, record, ttl_seconds=1800)

        clock.now += 1799
        assert (await cache.get(record.id)).hit is True

        clock.now += 1
        assert (await cache.get(record.id)).status == CacheStatus.MISS

    async def test_rewrite_replaces_value(self):
        cache = EnrichmentCache(MemoryCacheBackend())
        await cache.put("k", _record("k"))
        newer = EnrichedRecord(id="k", title="New", source_url="https://x/1", ingested_at=datetime.now(timezone.utc))
        await cache.put("k", newer)

        assert (await cache.get("k")).record.title == "New"

    async def test_unreadable_entry_is_error(self):
        backend = MemoryCacheBackend()
        await backend.set_ex("k", 60, "{not json")
        lookup = await EnrichmentCache(backend).get("k")

        assert lookup.status == CacheStatus.ERROR
        assert lookup.hit is False


@pytest.mark.asyncio
class TestEnrichmentCacheDegraded:
    """Unavailable stores never raise."""

    async def test_not_ready_reads_as_unavailable(self):
        cache = EnrichmentCache(DownBackend())
        lookup = await cache.get("k")
        assert lookup.status == CacheStatus.UNAVAILABLE
        assert lookup.record is None

    async def test_not_ready_write_is_skipped(self):
        assert await EnrichmentCache(DownBackend()).put("k", _record()) is False

    async def test_failing_store(self):
        cache = EnrichmentCache(FlakyBackend())
        assert (await cache.get("k")).status == CacheStatus.UNAVAILABLE
        assert await cache.put("k", _record()) is False

    async def test_slow_store_times_out(self):
        cache = EnrichmentCache(SlowBackend(), timeout_seconds=0.01)
        assert (await cache.get("k")).status == CacheStatus.ERROR
        assert await cache.put("k", _record()) is False

    async def test_unreachable_redis(self):
        cache = EnrichmentCache(RedisCacheBackend("redis://127.0.0.1:1/0", timeout_seconds=0.2))
        await cache.connect()

        assert cache.is_ready is False
        assert (await cache.get("k")).status == CacheStatus.UNAVAILABLE
        assert await cache.put("k", _record()) is False
        await cache.close()


@pytest.mark.asyncio
class TestSQLiteBackend:
    """Tests for the file-backed store."""

    async def test_round_trip(self, tmp_path):
        backend = SQLiteCacheBackend(str(tmp_path / "cache" / "enrich.db"))
        cache = EnrichmentCache(backend)
        await cache.connect()
        record = _record()

        assert await cache.put(record.id, record) is True
        assert (await cache.get(record.id)).record == record
        await cache.close()
        assert backend.is_ready is False

    async def test_expiry(self, tmp_path):
        clock = FakeClock()
        backend = SQLiteCacheBackend(str(tmp_path / "enrich.db"), clock=clock)
        await backend.connect()

        await backend.set_ex("k", 10, "v")
        assert await backend.get("k") == "v"
        clock.now += 10
        assert await backend.get("k") is None
        await backend.close()

    async def test_upsert(self, tmp_path):
        backend = SQLiteCacheBackend(str(tmp_path / "enrich.db"))
        await backend.connect()

        await backend.set_ex("k", 60, "first")
        await backend.set_ex("k", 60, "second")
        assert await backend.get("k") == "second"
        await backend.close()

    async def test_not_connected_raises_unavailable(self, tmp_path):
        backend = SQLiteCacheBackend(str(tmp_path / "enrich.db"))
        with pytest.raises(CacheUnavailableError):
            await backend.get("k")


class TestCreateCache:
    def _settings(self, monkeypatch, **env):
        for key in ("REDIS_DATABASE", "REDIS_URL", "CACHE_BACKEND"):
            monkeypatch.delenv(key, raising=False)
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return Settings.from_env()

    def test_defaults_to_memory_without_redis(self, monkeypatch):
        cache = create_cache(self._settings(monkeypatch))
        assert cache.backend_name == "memory"

    def test_redis_when_url_set(self, monkeypatch):
        cache = create_cache(self._settings(monkeypatch, REDIS_DATABASE="redis://localhost:6379/0"))
        assert cache.backend_name == "redis"

    def test_sqlite(self, monkeypatch, tmp_path):
        cache = create_cache(
            self._settings(monkeypatch, CACHE_BACKEND="sqlite", CACHE_DB_PATH=str(tmp_path / "c.db"))
        )
        assert cache.backend_name == "sqlite"

    def test_unknown_backend(self, monkeypatch):
        with pytest.raises(ValueError, match="Unknown cache backend"):
            create_cache(self._settings(monkeypatch, CACHE_BACKEND="memcached"))
