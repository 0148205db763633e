from __future__ import annotations

from app.core.collections import CollectionNames
from app.models.usage.document import UsageLog
from app.repositories.base import BaseRepository


class UsageRepository(BaseRepository):
    """Append-only MongoDB repository for the ``usage_logs`` collection."""

    COLLECTION_NAME = CollectionNames.USAGE_LOGS

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("user_id", 1), ("created_at", -1)])
        await self._col.create_index([("api_key_id", 1), ("created_at", -1)])

    async def insert(self, log: UsageLog) -> None:
        await self._col.insert_one(log.model_dump())
