"""Cache-aside store for enriched records.

The cache never computes values. Callers look up a content id, compute on a
miss and write the result back with a fixed TTL. Backends:

- RedisCacheBackend: production store (SETEX writes)
- SQLiteCacheBackend: single-file store for local runs
- MemoryCacheBackend: in-process dict for development and tests

An unreachable backend never fails a request: reads report a miss and
writes are logged and dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from technews.providers.content_types import EnrichedRecord

if TYPE_CHECKING:
    from technews.core.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 30
DEFAULT_TIMEOUT_SECONDS = 2.0

# Seconds a failed Redis backend stays "not ready" before the next attempt
RECONNECT_BACKOFF_SECONDS = 5.0


class CacheUnavailableError(Exception):
    """The backing store is unreachable or not ready."""


class CacheStatus(str, Enum):
    """Outcome of a cache lookup."""

    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"  # Store not ready; treated as a miss
    ERROR = "error"  # Store failed or entry unreadable; treated as a miss


@dataclass
class CacheLookup:
    """Result of EnrichmentCache.get."""

    status: CacheStatus
    record: EnrichedRecord | None = None
    message: str | None = None

    @property
    def hit(self) -> bool:
        return self.status == CacheStatus.HIT and self.record is not None


class CacheBackend(ABC):
    """String key/value store with per-key expiry."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """Whether the store can currently serve requests."""
        ...

    async def connect(self) -> None:
        """Open the connection. Failures leave the backend not ready."""

    async def close(self) -> None:
        """Release the connection."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value or None if absent/expired.

        Raises:
            CacheUnavailableError: If the store cannot be reached.
        """
        ...

    @abstractmethod
    async def set_ex(self, key: str, ttl_seconds: int, value: str) -> None:
        """Store value under key, expiring after ttl_seconds.

        Raises:
            CacheUnavailableError: If the store cannot be reached.
        """
        ...


class MemoryCacheBackend(CacheBackend):
    """In-process backend. Safe for concurrent use within one event loop."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    @property
    def name(self) -> str:
        return "memory"

    @property
    def is_ready(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set_ex(self, key: str, ttl_seconds: int, value: str) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)


SQLITE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS enrichment_cache (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  expires_at REAL NOT NULL
);
"""


class SQLiteCacheBackend(CacheBackend):
    """File-backed backend. Queries run in the default executor."""

    def __init__(self, db_path: str, clock: Callable[[], float] = time.time) -> None:
        self._db_path = db_path
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "sqlite"

    @property
    def is_ready(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        try:
            if self._db_path != ":memory:":
                os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
            conn = sqlite3.connect(self._db_path, check_same_thread=False)
            conn.executescript(SQLITE_SCHEMA_SQL)
            conn.commit()
            self._conn = conn
        except (OSError, sqlite3.Error) as e:
            logger.warning(f"SQLite cache unavailable at {self._db_path}: {e}")
            self._conn = None

    async def close(self) -> None:
        if self._conn is not None:
            with self._lock:
                self._conn.close()
            self._conn = None

    async def _run(self, fn: Callable[[sqlite3.Connection], object]) -> object:
        conn = self._conn
        if conn is None:
            raise CacheUnavailableError("SQLite cache not connected")

        def _locked() -> object:
            with self._lock:
                return fn(conn)

        try:
            return await asyncio.get_running_loop().run_in_executor(None, _locked)
        except sqlite3.Error as e:
            raise CacheUnavailableError(f"SQLite cache error: {e}") from e

    async def get(self, key: str) -> str | None:
        now = self._clock()

        def _select(conn: sqlite3.Connection) -> str | None:
            row = conn.execute(
                "SELECT value FROM enrichment_cache WHERE key = ? AND expires_at > ?",
                (key, now),
            ).fetchone()
            return row[0] if row else None

        return await self._run(_select)  # type: ignore[return-value]

    async def set_ex(self, key: str, ttl_seconds: int, value: str) -> None:
        now = self._clock()

        def _upsert(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM enrichment_cache WHERE expires_at <= ?", (now,))
            conn.execute(
                """
                INSERT INTO enrichment_cache (key, value, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at
                """,
                (key, value, now + ttl_seconds),
            )
            conn.commit()

        await self._run(_upsert)


class RedisCacheBackend(CacheBackend):
    """Redis backend using the asyncio client (connection pool is concurrency-safe)."""

    def __init__(self, url: str, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        if not url:
            raise ValueError("Redis URL is required")
        self._url = url
        self._timeout = timeout_seconds
        self._client: aioredis.Redis | None = None
        self._ready = False
        self._retry_at = 0.0

    @property
    def name(self) -> str:
        return "redis"

    @property
    def is_ready(self) -> bool:
        if self._client is None:
            return False
        return self._ready or time.monotonic() >= self._retry_at

    async def connect(self) -> None:
        self._client = aioredis.from_url(
            self._url,
            decode_responses=True,
            socket_timeout=self._timeout,
            socket_connect_timeout=self._timeout,
        )
        try:
            await self._client.ping()
            self._ready = True
            logger.info("Connected to Redis cache")
        except (RedisError, OSError) as e:
            self._mark_failed(e)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._ready = False

    def _mark_failed(self, error: Exception) -> None:
        if self._ready or self._retry_at == 0.0:
            logger.warning(f"Redis cache error, treating as unavailable: {error}")
        self._ready = False
        self._retry_at = time.monotonic() + RECONNECT_BACKOFF_SECONDS

    async def get(self, key: str) -> str | None:
        if self._client is None:
            raise CacheUnavailableError("Redis client not connected")
        try:
            value = await self._client.get(key)
        except (RedisError, OSError) as e:
            self._mark_failed(e)
            raise CacheUnavailableError(str(e)) from e
        self._ready = True
        return value

    async def set_ex(self, key: str, ttl_seconds: int, value: str) -> None:
        if self._client is None:
            raise CacheUnavailableError("Redis client not connected")
        try:
            await self._client.setex(key, ttl_seconds, value)
        except (RedisError, OSError) as e:
            self._mark_failed(e)
            raise CacheUnavailableError(str(e)) from e
        self._ready = True


class EnrichmentCache:
    """Maps content id -> serialized EnrichedRecord. Never raises to callers."""

    def __init__(
        self,
        backend: CacheBackend,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._backend = backend
        self._timeout = timeout_seconds

    @property
    def backend_name(self) -> str:
        return self._backend.name

    @property
    def is_ready(self) -> bool:
        return self._backend.is_ready

    async def connect(self) -> None:
        await self._backend.connect()
        if not self._backend.is_ready:
            logger.warning(f"Cache backend '{self._backend.name}' not ready; every request will recompute")

    async def close(self) -> None:
        await self._backend.close()

    async def get(self, content_id: str) -> CacheLookup:
        """Look up a record. Any failure is reported as a non-hit status."""
        if not self._backend.is_ready:
            return CacheLookup(status=CacheStatus.UNAVAILABLE, message="cache not ready")

        try:
            raw = await asyncio.wait_for(self._backend.get(content_id), self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Cache read timed out after {self._timeout}s for {content_id}")
            return CacheLookup(status=CacheStatus.ERROR, message="timeout")
        except CacheUnavailableError as e:
            logger.warning(f"Cache read failed for {content_id}: {e}")
            return CacheLookup(status=CacheStatus.UNAVAILABLE, message=str(e))

        if raw is None:
            return CacheLookup(status=CacheStatus.MISS)

        try:
            record = EnrichedRecord.from_dict(json.loads(raw))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Discarding unreadable cache entry {content_id}: {e}")
            return CacheLookup(status=CacheStatus.ERROR, message="unreadable entry")

        return CacheLookup(status=CacheStatus.HIT, record=record)

    async def put(
        self,
        content_id: str,
        record: EnrichedRecord,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> bool:
        """Best-effort write. Returns False (and logs) if the write did not happen."""
        if not self._backend.is_ready:
            logger.warning(f"Cache not ready, skipping write for {content_id}")
            return False

        payload = json.dumps(record.to_dict())
        try:
            await asyncio.wait_for(
                self._backend.set_ex(content_id, ttl_seconds, payload),
                self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Cache write timed out after {self._timeout}s for {content_id}")
            return False
        except CacheUnavailableError as e:
            logger.warning(f"Cache write failed for {content_id}: {e}")
            return False

        logger.debug(f"Cached {content_id} for {ttl_seconds}s")
        return True


def create_cache(settings: Settings) -> EnrichmentCache:
    """Build the cache configured in settings (not yet connected).

    Raises:
        ValueError: If the backend name is unknown.
    """
    backend_name = settings.cache_backend

    backend: CacheBackend
    if backend_name == "redis":
        backend = RedisCacheBackend(settings.redis_url, timeout_seconds=settings.cache_timeout_seconds)
    elif backend_name == "sqlite":
        backend = SQLiteCacheBackend(settings.cache_db_path)
    elif backend_name == "memory":
        backend = MemoryCacheBackend()
    else:
        raise ValueError(f"Unknown cache backend: {backend_name}. Available: redis, sqlite, memory")

    return EnrichmentCache(backend, timeout_seconds=settings.cache_timeout_seconds)
