from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.collections import CollectionNames
from app.core.errors import StoreUnavailableError
from app.models.cache.entry import CacheEntry
from app.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class CacheRepository(BaseRepository):
    """Durable cache tier: the ``cached_metadata`` collection.

    Read and write failures raise :class:`StoreUnavailableError`; a missing
    document is ``None``, and so is one that no longer fits
    :class:`CacheEntry`.  Expiry is not checked here, callers compare
    ``expires_at`` against their own clock.
    """

    COLLECTION_NAME = CollectionNames.CACHED_METADATA

    async def ensure_indexes(self) -> None:
        await self._col.create_index("key", unique=True)
        # MongoDB's TTL monitor removes documents once expires_at has passed.
        await self._col.create_index("expires_at", expireAfterSeconds=0)

    async def find(self, key: str) -> Optional[CacheEntry]:
        try:
            result = await self._col.find_one({"key": key})
        except PyMongoError as exc:
            raise StoreUnavailableError(f"cache lookup failed: {exc}") from exc
        if result is None:
            return None
        result.pop("_id", None)
        try:
            return CacheEntry(**result)
        except ValidationError as exc:
            logger.warning("Discarding malformed cache document for key=%s: %s", key, exc)
            return None

    async def upsert(self, entry: CacheEntry) -> CacheEntry:
        """Insert or overwrite the entry keyed by ``key``.

        A ``DuplicateKeyError`` from two concurrent upserts racing on the
        unique index is retried as a plain update.
        """
        payload = entry.model_dump()
        try:
            updated = await self._col.find_one_and_update(
                {"key": entry.key},
                {"$set": payload},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            try:
                updated = await self._col.find_one_and_update(
                    {"key": entry.key},
                    {"$set": payload},
                    return_document=ReturnDocument.AFTER,
                )
            except PyMongoError as exc:
                raise StoreUnavailableError(f"cache write failed: {exc}") from exc
            if updated is None:
                raise StoreUnavailableError(
                    f"Upsert race condition unresolved for key={entry.key}"
                )
        except PyMongoError as exc:
            raise StoreUnavailableError(f"cache write failed: {exc}") from exc

        updated.pop("_id", None)
        return CacheEntry(**updated)

    async def delete(self, key: str) -> bool:
        """Delete the entry for *key*; returns whether one existed."""
        try:
            result = await self._col.delete_one({"key": key})
        except PyMongoError as exc:
            raise StoreUnavailableError(f"cache delete failed: {exc}") from exc
        return result.deleted_count > 0

    async def delete_expired(self, now: datetime) -> int:
        try:
            result = await self._col.delete_many({"expires_at": {"$lte": now}})
        except PyMongoError as exc:
            raise StoreUnavailableError(f"cache purge failed: {exc}") from exc
        return result.deleted_count
