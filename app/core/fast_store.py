"""Fast key/value tier backed by Redis.

The fast tier is optional.  ``FastStoreManager.connect`` installs either a
``RedisFastStore`` (when ``REDIS_URL`` is configured) or a ``NullFastStore``
that reports itself unavailable, so callers branch on ``store.available``
rather than on ``None`` checks.

Every transport failure surfaces as :class:`StoreUnavailableError`; a
reachable store that has no value for a key returns ``None``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (RedisError, OSError)


class FastStore(ABC):
    """Interface shared by the Redis tier and its null stand-in."""

    available: bool = False

    @abstractmethod
    async def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def incr_window(self, key: str, window_ms: int) -> tuple[int, int]:
        """Atomically increment *key* and return ``(count, ttl_ms)``.

        A counter without an expiry gets one of *window_ms*; that first
        expiry marks the window boundary.
        """

    async def ping(self) -> bool:
        return False

    async def close(self) -> None:
        return None


class NullFastStore(FastStore):
    """Stand-in used when no Redis is configured."""

    available = False

    async def get(self, key: str) -> Optional[str]:
        raise StoreUnavailableError("fast store not configured")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise StoreUnavailableError("fast store not configured")

    async def delete(self, key: str) -> None:
        raise StoreUnavailableError("fast store not configured")

    async def incr_window(self, key: str, window_ms: int) -> tuple[int, int]:
        raise StoreUnavailableError("fast store not configured")


class RedisFastStore(FastStore):
    """``FastStore`` over a ``redis.asyncio`` client."""

    available = True

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisFastStore:
        client = Redis.from_url(
            url,
            socket_timeout=settings.redis_timeout,
            socket_connect_timeout=settings.redis_timeout,
            decode_responses=True,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except _TRANSPORT_ERRORS as exc:
            raise StoreUnavailableError(f"redis GET failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, value, ex=max(1, ttl_seconds))
        except _TRANSPORT_ERRORS as exc:
            raise StoreUnavailableError(f"redis SET failed: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except _TRANSPORT_ERRORS as exc:
            raise StoreUnavailableError(f"redis DEL failed: {exc}") from exc

    async def incr_window(self, key: str, window_ms: int) -> tuple[int, int]:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                count, ttl_ms = await pipe.incr(key).pttl(key).execute()
            # -1: counter has no expiry yet, i.e. this request opened the window.
            if ttl_ms is None or ttl_ms < 0:
                await self._client.pexpire(key, window_ms)
                ttl_ms = window_ms
        except _TRANSPORT_ERRORS as exc:
            raise StoreUnavailableError(f"redis INCR failed: {exc}") from exc
        return int(count), int(ttl_ms)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except _TRANSPORT_ERRORS as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    async def close(self) -> None:
        await self._client.aclose()


class FastStoreManager:
    """Owns the process-wide fast store.

    Lifecycle::

        await fast_store.connect()     # call once at startup
        ...
        await fast_store.disconnect()  # call once at shutdown
    """

    def __init__(self) -> None:
        self._store: FastStore = NullFastStore()

    @property
    def store(self) -> FastStore:
        return self._store

    async def connect(self) -> None:
        if not settings.redis_url:
            logger.info("REDIS_URL not set; fast cache tier disabled.")
            self._store = NullFastStore()
            return
        store = RedisFastStore.from_url(settings.redis_url)
        if await store.ping():
            logger.info("Connected to Redis.")
        else:
            # Keep the client: redis-py reconnects on the next command.
            logger.warning("Redis unreachable at startup; falling back per request.")
        self._store = store

    async def disconnect(self) -> None:
        await self._store.close()
        self._store = NullFastStore()
        logger.info("Fast store closed.")


#: Module-level instance, wired up in the app lifespan.
fast_store: FastStoreManager = FastStoreManager()
