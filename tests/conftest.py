from __future__ import annotations

import logging
from contextlib import ExitStack, contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional
from unittest.mock import AsyncMock, patch

import fakeredis
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import ServerSelectionTimeoutError

from app.core.collections import CollectionNames
from app.core.fast_store import FastStore, NullFastStore, RedisFastStore, fast_store
from app.main import app
from app.services.rate_limit.local_store import LocalWindowStore

_COLLECTION_METHODS = (
    "find_one",
    "find_one_and_update",
    "update_one",
    "insert_one",
    "delete_one",
    "delete_many",
    "create_index",
)


@contextmanager
def _unreachable(collection) -> Iterator[None]:
    """Make every call on *collection* fail as if MongoDB were down."""
    exc = ServerSelectionTimeoutError("no servers")
    with ExitStack() as stack:
        for name in _COLLECTION_METHODS:
            stack.enter_context(
                patch.object(collection, name, new_callable=AsyncMock, side_effect=exc)
            )
        yield


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Clock:
    """Manually advanced clock usable as both a datetime and a ms source."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def ms(self) -> int:
        return (self.now - _EPOCH) // timedelta(milliseconds=1)

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def app_caplog(caplog):
    """caplog that also sees the ``app`` namespace, which does not propagate."""
    app_log = logging.getLogger("app")
    previous = app_log.propagate
    app_log.propagate = True
    yield caplog
    app_log.propagate = previous


@pytest.fixture
def mongo_db():
    return AsyncMongoMockClient(tz_aware=True)["ogify"]


@pytest.fixture
def collection(mongo_db):
    return mongo_db[CollectionNames.CACHED_METADATA]


@pytest.fixture
def mongo_down():
    """``with mongo_down(collection):`` makes every call on it fail."""
    return _unreachable


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def redis_client():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def redis_store(redis_client) -> RedisFastStore:
    return RedisFastStore(redis_client)


@pytest.fixture
def collections(mongo_db) -> dict:
    """One shared collection object per name, so tests can patch it."""
    return {
        name: mongo_db[name]
        for name in (
            CollectionNames.CACHED_METADATA,
            CollectionNames.API_KEYS,
            CollectionNames.USAGE_LOGS,
        )
    }


@pytest.fixture
def app_fast_store() -> FastStore:
    """Fast tier the app runs with; override to plug in Redis."""
    return NullFastStore()


@pytest.fixture
def raise_server_exceptions() -> bool:
    return True


@pytest.fixture
def client(collections, app_fast_store, raise_server_exceptions):
    """TestClient with in-memory collections and no external connections."""
    windows = LocalWindowStore()
    with (
        patch("app.core.database.DatabaseManager.connect", new_callable=AsyncMock),
        patch("app.core.database.DatabaseManager.disconnect", new_callable=AsyncMock),
        patch(
            "app.core.database.DatabaseManager.get_collection",
            side_effect=lambda name: collections[name],
        ),
        patch("app.core.fast_store.FastStoreManager.connect", new_callable=AsyncMock),
        patch("app.core.fast_store.FastStoreManager.disconnect", new_callable=AsyncMock),
        patch.object(fast_store, "_store", app_fast_store),
        patch("app.api.deps.local_windows", windows),
        patch("app.main.local_windows", windows),
        patch("app.main.close_http_client", new_callable=AsyncMock),
    ):
        with TestClient(app, raise_server_exceptions=raise_server_exceptions) as c:
            yield c
