"""Two-tier metadata cache.

Reads go fast tier → durable tier → absent; writes go to both tiers.  The
tiers fail independently and neither may fail the caller's request:
every storage error is logged here and turned into a fallback.  Writes are
not atomic across tiers; a copy present in one tier and missing from the
other is resolved by the read order on the next lookup.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError

from app.core.config import settings
from app.core.errors import StoreUnavailableError
from app.core.fast_store import FastStore
from app.core.hashing import hash_key
from app.models.cache.entry import CacheEntry, FastCacheEnvelope
from app.models.cache.lookup import CacheLookup
from app.repositories.cache.repository import CacheRepository

logger = logging.getLogger(__name__)

FAST_TIER = "fast"
DURABLE_TIER = "durable"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheCoordinator:
    def __init__(
        self,
        fast: FastStore,
        durable: CacheRepository,
        ttl_seconds: Optional[int] = None,
        key_prefix: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fast = fast
        self._durable = durable
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self._prefix = key_prefix if key_prefix is not None else settings.cache_key_prefix
        self._clock = clock

    def _fast_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, subject: str) -> Optional[dict[str, Any]]:
        """Return the cached payload for *subject*, or ``None``."""
        lookup = await self.lookup(subject)
        return lookup.value if lookup.is_hit else None

    async def lookup(self, subject: str) -> CacheLookup:
        """Resolve *subject* across both tiers.

        The result is ``UNAVAILABLE`` only when the durable tier could not
        answer; a fast-tier outage on its own just moves the read to the
        durable tier.
        """
        key = hash_key(subject)
        now = self._clock()

        if self._fast.available:
            fast = await self._read_fast(key, now)
            if fast.is_hit:
                return fast

        durable = await self._read_durable(key, now)
        if durable.is_hit:
            await self._backfill_fast(key, durable, now)
        return durable

    async def _read_fast(self, key: str, now: datetime) -> CacheLookup:
        try:
            raw = await self._fast.get(self._fast_key(key))
        except StoreUnavailableError as exc:
            logger.warning("Fast cache tier unavailable on read: %s", exc)
            return CacheLookup.unavailable(FAST_TIER)
        if raw is None:
            return CacheLookup.miss(FAST_TIER)
        try:
            envelope = FastCacheEnvelope.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding malformed fast cache value for key=%s", key)
            return CacheLookup.miss(FAST_TIER)
        if now >= envelope.expires_at:
            return CacheLookup.miss(FAST_TIER)
        return CacheLookup.hit(envelope.payload, FAST_TIER, envelope.expires_at)

    async def _read_durable(self, key: str, now: datetime) -> CacheLookup:
        try:
            entry = await self._durable.find(key)
        except StoreUnavailableError as exc:
            logger.warning("Durable cache tier unavailable on read: %s", exc)
            return CacheLookup.unavailable(DURABLE_TIER)
        if entry is None or entry.is_expired(now):
            logger.debug("Cache miss for key=%s", key)
            return CacheLookup.miss(DURABLE_TIER)
        return CacheLookup.hit(entry.payload, DURABLE_TIER, entry.expires_at)

    async def _backfill_fast(self, key: str, lookup: CacheLookup, now: datetime) -> None:
        """Copy a durable hit into the fast tier for its remaining lifetime."""
        if not self._fast.available or lookup.expires_at is None:
            return
        remaining = math.ceil((lookup.expires_at - now).total_seconds())
        if remaining <= 0:
            return
        await self._write_fast(key, lookup.value or {}, lookup.expires_at, remaining)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set(self, subject: str, payload: dict[str, Any]) -> None:
        """Write *payload* to both tiers.  Never raises on storage errors."""
        key = hash_key(subject)
        now = self._clock()
        expires_at = now + timedelta(seconds=self._ttl)

        if self._fast.available:
            await self._write_fast(key, payload, expires_at, self._ttl)

        entry = CacheEntry(
            key=key,
            url=subject,
            payload=payload,
            fetched_at=now,
            expires_at=expires_at,
        )
        try:
            await self._durable.upsert(entry)
        except StoreUnavailableError as exc:
            logger.error("Durable cache write failed for %s: %s", subject, exc)

    async def _write_fast(
        self,
        key: str,
        payload: dict[str, Any],
        expires_at: datetime,
        ttl_seconds: int,
    ) -> None:
        envelope = FastCacheEnvelope(payload=payload, expires_at=expires_at)
        try:
            await self._fast.set(
                self._fast_key(key), envelope.model_dump_json(), ttl_seconds
            )
        except StoreUnavailableError as exc:
            logger.warning("Fast cache tier unavailable on write: %s", exc)

    async def invalidate(self, subject: str) -> None:
        """Remove *subject* from both tiers; absence is not an error."""
        key = hash_key(subject)
        if self._fast.available:
            try:
                await self._fast.delete(self._fast_key(key))
            except StoreUnavailableError as exc:
                logger.warning("Fast cache tier unavailable on delete: %s", exc)
        try:
            await self._durable.delete(key)
        except StoreUnavailableError as exc:
            logger.error("Durable cache delete failed for %s: %s", subject, exc)

    async def purge_expired(self) -> int:
        """Delete expired durable entries and return how many were removed."""
        try:
            removed = await self._durable.delete_expired(self._clock())
        except StoreUnavailableError as exc:
            logger.warning("Durable cache purge skipped: %s", exc)
            return 0
        if removed:
            logger.info("Purged %d expired cache entries.", removed)
        return removed
