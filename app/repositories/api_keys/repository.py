from __future__ import annotations

from datetime import datetime
from typing import Optional

from pymongo.errors import PyMongoError

from app.core.collections import CollectionNames
from app.core.errors import StoreUnavailableError
from app.models.api_keys.document import ApiKeyRecord
from app.repositories.base import BaseRepository


class ApiKeyRepository(BaseRepository):
    """MongoDB repository for the ``api_keys`` collection."""

    COLLECTION_NAME = CollectionNames.API_KEYS

    async def ensure_indexes(self) -> None:
        await self._col.create_index("key", unique=True)
        await self._col.create_index("id", unique=True)

    async def find_by_key(self, key: str) -> Optional[ApiKeyRecord]:
        """Return the record for the secret *key*, or ``None`` if unknown.

        Raises :class:`StoreUnavailableError` when MongoDB cannot be reached.
        """
        try:
            result = await self._col.find_one({"key": key})
        except PyMongoError as exc:
            raise StoreUnavailableError(f"api key lookup failed: {exc}") from exc
        if result is None:
            return None
        result.pop("_id", None)
        return ApiKeyRecord(**result)

    async def touch_last_used(self, key_id: str, when: datetime) -> None:
        await self._col.update_one({"id": key_id}, {"$set": {"last_used_at": when}})
