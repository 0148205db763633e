"""MongoDB connection shared by the durable cache tier, API keys and usage logs."""

from __future__ import annotations

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from app.core.config import settings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Process-wide Motor client; use the module-level ``db``.

    ``connect()`` never raises on an unreachable server.  Repositories see
    the outage as ``PyMongoError`` on their own calls, and the cache
    coordinator turns that into an unavailable tier.
    """

    _instance: DatabaseManager | None = None
    _client: AsyncIOMotorClient | None = None

    def __new__(cls) -> DatabaseManager:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def connect(self) -> None:
        self._client = AsyncIOMotorClient(
            settings.mongo_uri,
            maxPoolSize=settings.mongo_max_pool_size,
            serverSelectionTimeoutMS=settings.mongo_timeout_ms,
            tz_aware=True,
        )
        if await self.ping():
            logger.info("Connected to MongoDB at %s.", settings.mongo_uri)
        else:
            logger.warning("MongoDB unreachable at %s; durable tier degraded.", settings.mongo_uri)

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
        except PyMongoError as exc:
            logger.debug("MongoDB ping failed: %s", exc)
            return False
        return True

    async def disconnect(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("Disconnected from MongoDB.")

    def get_collection(self, name: str) -> AsyncIOMotorCollection:
        if self._client is None:
            raise RuntimeError("DatabaseManager is not connected. Call connect() first.")
        return self._client[settings.mongo_db][name]


db: DatabaseManager = DatabaseManager()
