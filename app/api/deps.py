"""FastAPI dependencies: service wiring, API-key auth and the rate-limit gate."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from fastapi import Depends, Header, Query, Request

from app.api.errors import AuthError, RateLimitExceededError
from app.core.database import db
from app.core.errors import StoreUnavailableError
from app.core.fast_store import fast_store
from app.models.api_keys.document import ApiKeyRecord
from app.models.rate_limit.window import RateLimitDecision
from app.repositories.api_keys.repository import ApiKeyRepository
from app.repositories.cache.repository import CacheRepository
from app.repositories.usage.repository import UsageRepository
from app.services.cache.service import CacheCoordinator
from app.services.metadata.service import MetadataService
from app.services.rate_limit.local_store import LocalWindowStore
from app.services.rate_limit.service import RateLimitCoordinator
from app.services.usage.service import UsageService

logger = logging.getLogger(__name__)

#: Process-wide fallback counters; the sweep is started in the app lifespan.
local_windows: LocalWindowStore = LocalWindowStore()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def get_cache() -> CacheCoordinator:
    return CacheCoordinator(fast_store.store, CacheRepository.from_db(db))


def get_rate_limiter() -> RateLimitCoordinator:
    return RateLimitCoordinator(fast_store.store, local_windows)


def get_usage_service() -> UsageService:
    return UsageService(UsageRepository.from_db(db), ApiKeyRepository.from_db(db))


def get_metadata_service(cache: CacheCoordinator = Depends(get_cache)) -> MetadataService:
    return MetadataService(cache)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


async def get_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    api_key: Optional[str] = Query(None),
) -> Optional[ApiKeyRecord]:
    """Resolve the caller's API key, or ``None`` for anonymous requests.

    A key that is supplied but unknown, deactivated or expired is rejected
    rather than downgraded to anonymous.  If the key store is unreachable
    the request fails with 503.
    """
    secret = x_api_key or api_key
    if not secret:
        return None

    try:
        record = await ApiKeyRepository.from_db(db).find_by_key(secret)
    except StoreUnavailableError as exc:
        logger.error("API key lookup failed: %s", exc)
        raise AuthError("Authentication temporarily unavailable", 503) from exc
    if record is None:
        raise AuthError("Invalid API key")
    if not record.active:
        raise AuthError("API key has been deactivated")
    if record.expires_at is not None:
        expires_at = record.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at < datetime.now(timezone.utc):
            raise AuthError("API key has expired")

    request.state.api_key = record
    return record


async def require_api_key(
    api_key: Optional[ApiKeyRecord] = Depends(get_api_key),
) -> ApiKeyRecord:
    if api_key is None:
        raise AuthError(
            "API key required. Pass it via the X-API-Key header or api_key query parameter"
        )
    return api_key


async def require_extract_permission(
    api_key: Optional[ApiKeyRecord] = Depends(get_api_key),
) -> Optional[ApiKeyRecord]:
    if api_key is not None and not api_key.can_extract:
        raise AuthError("API key does not have permission for extraction", 403)
    return api_key


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


def rate_limited(endpoint: str) -> Callable[..., Awaitable[RateLimitDecision]]:
    """Build a dependency that counts the request and rejects it over the limit.

    The decision is stored on ``request.state.rate_limit`` so the
    ``X-RateLimit-*`` headers can be attached to whatever response follows.
    """

    async def _enforce(
        request: Request,
        api_key: Optional[ApiKeyRecord] = Depends(require_extract_permission),
        limiter: RateLimitCoordinator = Depends(get_rate_limiter),
        usage: UsageService = Depends(get_usage_service),
    ) -> RateLimitDecision:
        request.state.started_at = time.perf_counter()
        identity, config = limiter.resolve(api_key, client_address(request))
        decision = await limiter.check(identity, config)
        request.state.rate_limit = decision
        if not decision.allowed:
            logger.info("Rate limit exceeded for %s", identity.window_key)
            if api_key is not None:
                await usage.log_usage(
                    api_key,
                    endpoint=endpoint,
                    status=429,
                    latency_ms=elapsed_ms(request),
                    cached=False,
                    url=request.query_params.get("url"),
                    user_agent=request.headers.get("user-agent"),
                    ip=client_address(request),
                )
            raise RateLimitExceededError(decision)
        return decision

    return _enforce


def elapsed_ms(request: Request) -> int:
    started = getattr(request.state, "started_at", None)
    if started is None:
        return 0
    return int((time.perf_counter() - started) * 1000)
