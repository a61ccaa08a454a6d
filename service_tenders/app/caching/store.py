"""
Cache store backends for the tender service.

``RedisCacheStore`` talks to Redis through ``redis.asyncio`` and fails soft:
any connection or command error degrades to a miss (``get``), ``False``
(``set``/``delete``) or ``0`` (``delete_by_prefix``). ``NullCacheStore`` is the
always-miss pass-through used when caching is disabled or unconfigured. The
backend is picked once at startup by ``create_cache_store``.
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from shared.config import BaseConfig
from shared.errors import CacheUnavailableError
from shared.logging import get_logger

from .keys import CACHE_NULL


class _CacheMiss:
    """Marker returned by ``get`` when a key is absent."""

    _instance: Optional["_CacheMiss"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "CACHE_MISS"


CACHE_MISS = _CacheMiss()


def encode_value(value: Any) -> str:
    """Serialize a cache entry. ``None`` is stored as the null sentinel."""
    if value is None:
        return CACHE_NULL
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def decode_value(payload: Optional[str]) -> Any:
    """Inverse of ``encode_value``. Absent payloads decode to ``CACHE_MISS``."""
    if payload is None or payload == "":
        return CACHE_MISS
    if payload == CACHE_NULL:
        return None
    return json.loads(payload)


class CacheStore(ABC):
    """Key-value cache with per-entry TTL."""

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether the backing cache is configured and not known to be down."""

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return the cached value, ``None`` for a cached null or ``CACHE_MISS``."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store a value with a TTL in seconds."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove one key."""

    @abstractmethod
    async def delete_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix`` and return how many went."""

    async def health_check(self) -> str:
        return "disabled"

    async def close(self) -> None:
        return None


class NullCacheStore(CacheStore):
    """Always-miss store used when caching is turned off."""

    @property
    def available(self) -> bool:
        return False

    async def get(self, key: str) -> Any:
        return CACHE_MISS

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        return False

    async def delete(self, key: str) -> bool:
        return False

    async def delete_by_prefix(self, prefix: str) -> int:
        return 0


def escape_glob(pattern: str) -> str:
    """Escape Redis glob metacharacters so a prefix matches literally."""
    return "".join("\\" + char if char in "*?[]\\" else char for char in pattern)


class RedisCacheStore(CacheStore):
    """Redis-backed cache store with a lazily created, shared connection."""

    SCAN_COUNT = 100

    def __init__(
        self,
        redis_url: str,
        *,
        socket_timeout: float = 2.0,
        reconnect_interval: float = 5.0,
        client_factory: Optional[Callable[[], "redis.Redis"]] = None,
    ):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.reconnect_interval = reconnect_interval
        self.logger = get_logger("tenders.cache")

        self._client_factory = client_factory or self._default_client
        self._client: Optional[redis.Redis] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._retry_after = 0.0
        self._unavailable_logged = False

    @property
    def available(self) -> bool:
        """False during a known outage until the reconnect interval has passed."""
        return not (self._unavailable_logged and time.monotonic() < self._retry_after)

    def _default_client(self) -> "redis.Redis":
        return redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=self.socket_timeout,
            socket_timeout=self.socket_timeout,
        )

    async def _connect(self) -> "redis.Redis":
        try:
            client = self._client_factory()
        except (RedisError, ValueError) as exc:
            # Malformed URL or connection options
            raise CacheUnavailableError(details={"cause": str(exc)}) from exc

        try:
            await client.ping()
        except (RedisError, OSError, ValueError, asyncio.TimeoutError) as exc:
            try:
                await client.aclose()
            except (RedisError, OSError):
                pass
            raise CacheUnavailableError(details={"cause": str(exc)}) from exc
        return client

    async def _get_client(self) -> Optional["redis.Redis"]:
        """Return the memoized client, connecting on first use.

        Concurrent callers share one in-flight connection attempt. After a failed
        attempt no new one is made for ``reconnect_interval`` seconds.
        """
        if self._client is not None:
            return self._client

        if self._connect_task is None:
            if time.monotonic() < self._retry_after:
                return None
            self._connect_task = asyncio.ensure_future(self._connect())

        task = self._connect_task
        try:
            client = await asyncio.shield(task)
        except CacheUnavailableError as exc:
            if self._connect_task is task:
                self._connect_task = None
                self._retry_after = time.monotonic() + self.reconnect_interval
            self._mark_unavailable("Redis connection failed, caching disabled", exc.details.get("cause"))
            return None

        if self._client is None:
            self._client = client
            self._connect_task = None
            if self._unavailable_logged:
                self.logger.info("Redis connection restored", redis_url=self._safe_url())
            self._unavailable_logged = False
        return self._client

    def _mark_unavailable(self, message: str, error: Any) -> None:
        if not self._unavailable_logged:
            self._unavailable_logged = True
            self.logger.warning(message, error=str(error), redis_url=self._safe_url())

    def _safe_url(self) -> str:
        # Drop credentials from log output
        return self.redis_url.rsplit("@", 1)[-1]

    async def _drop_client(self, exc: Exception) -> None:
        """Forget a client whose connection broke so the next call reconnects."""
        if not isinstance(exc, (RedisConnectionError, RedisTimeoutError, OSError, asyncio.TimeoutError)):
            self.logger.warning("Redis command failed", error=str(exc))
            return

        self._mark_unavailable("Redis connection lost, caching disabled", exc)
        client, self._client = self._client, None
        self._retry_after = time.monotonic() + self.reconnect_interval
        if client is not None:
            try:
                await client.aclose()
            except (RedisError, OSError):
                pass

    async def get(self, key: str) -> Any:
        client = await self._get_client()
        if client is None:
            return CACHE_MISS

        try:
            payload = await client.get(key)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            await self._drop_client(exc)
            return CACHE_MISS

        try:
            return decode_value(payload)
        except ValueError as exc:
            self.logger.warning("Discarding unreadable cache entry", key=key, error=str(exc))
            return CACHE_MISS

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        client = await self._get_client()
        if client is None:
            return False

        try:
            payload = encode_value(value)
        except (TypeError, ValueError) as exc:
            self.logger.warning("Value is not cacheable", key=key, error=str(exc))
            return False

        try:
            await client.set(key, payload, ex=max(1, int(ttl_seconds)))
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            await self._drop_client(exc)
            return False
        return True

    async def delete(self, key: str) -> bool:
        client = await self._get_client()
        if client is None:
            return False

        try:
            await client.delete(key)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            await self._drop_client(exc)
            return False
        return True

    async def delete_by_prefix(self, prefix: str) -> int:
        client = await self._get_client()
        if client is None:
            return 0

        deleted = 0
        try:
            async for key in client.scan_iter(match=f"{escape_glob(prefix)}*", count=self.SCAN_COUNT):
                deleted += await client.delete(key)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            await self._drop_client(exc)

        if deleted:
            self.logger.info("Cleared cache prefix", prefix=prefix, keys_count=deleted)
        return deleted

    async def health_check(self) -> str:
        client = await self._get_client()
        if client is None:
            return "error"
        try:
            await client.ping()
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            await self._drop_client(exc)
            return "error"
        return "ok"

    async def close(self) -> None:
        task, self._connect_task = self._connect_task, None
        if task is not None and not task.done():
            task.cancel()

        client, self._client = self._client, None
        if client is not None:
            await client.aclose()
            self.logger.info("Redis cache stopped")


def create_cache_store(config: BaseConfig) -> CacheStore:
    """Pick the cache backend for the process."""
    logger = get_logger("tenders.cache")
    if not config.cache_configured:
        logger.info(
            "Caching disabled",
            cache_enabled=config.cache_enabled,
            redis_configured=bool(config.redis_url),
        )
        return NullCacheStore()

    return RedisCacheStore(
        config.redis_url,
        socket_timeout=config.cache_socket_timeout,
        reconnect_interval=config.cache_reconnect_interval,
    )
