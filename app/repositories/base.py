"""Abstract base class for all MongoDB repositories.

Every repository in this project extends ``BaseRepository``.

Extending for a new collection:
    1. Add the collection name to ``CollectionNames``.
    2. Subclass ``BaseRepository``, set ``COLLECTION_NAME``, and override
       ``ensure_indexes()`` with the indexes your collection needs.
    3. Add the repository to ``REPOSITORIES`` in ``main.py`` so its indexes
       are created at startup.

Example::

    class ApiKeyRepository(BaseRepository):
        COLLECTION_NAME = CollectionNames.API_KEYS

        async def ensure_indexes(self) -> None:
            await self._col.create_index("key", unique=True)
"""

from __future__ import annotations

from abc import ABC
from typing import ClassVar, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection

from app.core.database import DatabaseManager

T = TypeVar("T", bound="BaseRepository")


class BaseRepository(ABC):
    """Base class that wires a repository to its Motor collection.

    Subclasses declare:
    - ``COLLECTION_NAME`` - the name string from ``CollectionNames``.
    - ``ensure_indexes()`` - indexes to create at startup (idempotent).
    """

    COLLECTION_NAME: ClassVar[str]

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self._col = collection

    @classmethod
    def from_db(cls: type[T], db: DatabaseManager) -> T:
        """Instantiate the repository using the live ``DatabaseManager``.

        Usage::

            repo = CacheRepository.from_db(db)
        """
        return cls(db.get_collection(cls.COLLECTION_NAME))

    async def ensure_indexes(self) -> None:
        """Create collection indexes.  Called once at startup.

        The default is a no-op; MongoDB skips indexes that already exist.
        """
