from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from pymongo.errors import PyMongoError

from app.api.deps import get_cache, local_windows
from app.api.errors import register_exception_handlers
from app.api.router import router
from app.core.config import settings
from app.core.database import db
from app.core.fast_store import fast_store
from app.repositories.api_keys.repository import ApiKeyRepository
from app.repositories.cache.repository import CacheRepository
from app.repositories.usage.repository import UsageRepository
from app.workers.fetcher import close_http_client
from app.workers.periodic import PeriodicTask

logger = logging.getLogger(__name__)

REPOSITORIES = (CacheRepository, ApiKeyRepository, UsageRepository)


def _configure_logging() -> None:
    """Configure the ``app`` logger namespace.

    ``logging.basicConfig`` is a no-op when the root logger already has
    handlers (e.g. when uvicorn sets up its own handlers before our lifespan
    runs).  Configuring the ``app`` namespace directly, with
    ``propagate = False``, ensures all application logs reach stdout
    regardless of uvicorn's root-logger setup.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
    )
    app_log = logging.getLogger("app")
    app_log.setLevel(level)
    if not app_log.handlers:
        app_log.addHandler(handler)
    app_log.propagate = False


_configure_logging()


async def _ensure_indexes() -> None:
    for repo_cls in REPOSITORIES:
        try:
            await repo_cls.from_db(db).ensure_indexes()
        except PyMongoError as exc:
            logger.warning("Could not create indexes for %s: %s", repo_cls.__name__, exc)


async def _purge_expired_cache() -> None:
    await get_cache().purge_expired()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # ── Startup ──────────────────────────────────────────────────────
    await db.connect()
    await fast_store.connect()
    await _ensure_indexes()
    local_windows.start()
    cache_purge = PeriodicTask(
        "cache-purge", settings.cache_purge_interval, _purge_expired_cache
    )
    cache_purge.start()
    yield
    # ── Shutdown ─────────────────────────────────────────────────────
    await cache_purge.stop()
    await local_windows.stop()
    await close_http_client()
    await fast_store.disconnect()
    await db.disconnect()


app = FastAPI(
    title="Ogify API",
    description="OpenGraph metadata extraction with two-tier caching and per-key rate limits.",
    version="1.0.0",
    lifespan=lifespan,
)

register_exception_handlers(app)
app.include_router(router)


@app.middleware("http")
async def rate_limit_headers(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Copy the request's rate-limit decision onto the response headers."""
    response = await call_next(request)
    decision = getattr(request.state, "rate_limit", None)
    if decision is not None:
        response.headers.update(decision.headers())
    return response


@app.get("/", tags=["health"])
async def root() -> dict[str, str]:
    return {"name": "Ogify API", "version": "1.0.0", "status": "healthy", "docs": "/docs"}


@app.get("/health", tags=["health"])
async def health() -> dict[str, Any]:
    """Liveness plus store reachability.

    Always ``ok``: a store outage degrades caching but does not stop the
    service from answering.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "stores": {
            "mongo": await db.ping(),
            "redis": await fast_store.store.ping(),
        },
    }
