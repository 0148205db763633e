from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from app.core.config import settings
from app.core.errors import StoreUnavailableError
from app.core.fast_store import FastStore
from app.models.api_keys.document import ApiKeyRecord
from app.models.rate_limit.window import (
    RateLimitConfig,
    RateLimitDecision,
    RateLimitIdentity,
)
from app.services.rate_limit.local_store import LocalWindowStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimitCoordinator:
    """Fixed-window request counter keyed by identity.

    Counts in the fast store (atomic ``INCR``) when it is available and in
    the in-process ``LocalWindowStore`` when it is not or when a call fails.
    The request being checked is counted before the comparison, so with
    ``max_requests = N`` the (N+1)th request in a window is the first denied.
    """

    def __init__(
        self,
        fast: FastStore,
        local: LocalWindowStore,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._fast = fast
        self._local = local
        self._clock_ms = clock_ms

    async def check(
        self, identity: RateLimitIdentity, config: RateLimitConfig
    ) -> RateLimitDecision:
        key = identity.window_key
        now = self._clock_ms()

        if self._fast.available:
            try:
                count, ttl_ms = await self._fast.incr_window(key, config.window_ms)
            except StoreUnavailableError as exc:
                logger.warning("Rate limit store unavailable, counting locally: %s", exc)
            else:
                return RateLimitDecision.from_window(
                    count, now + ttl_ms, config.max_requests, now
                )

        window = self._local.increment_and_get(key, config.window_ms)
        return RateLimitDecision.from_window(
            window.count, window.reset_at_ms, config.max_requests, now
        )

    @staticmethod
    def resolve(
        api_key: Optional[ApiKeyRecord], client_ip: str
    ) -> tuple[RateLimitIdentity, RateLimitConfig]:
        """Pick the identity and allowance a request is counted against.

        Keyed requests get the key's own allowance (or the service default);
        anonymous requests are counted per client address at a stricter limit.
        """
        if api_key is None:
            return (
                RateLimitIdentity.for_ip(client_ip),
                RateLimitConfig(
                    window_ms=settings.rate_limit_window_ms,
                    max_requests=settings.rate_limit_anonymous_max,
                ),
            )
        return (
            RateLimitIdentity.for_api_key(api_key.id),
            RateLimitConfig(
                window_ms=settings.rate_limit_window_ms,
                max_requests=api_key.rate_limit or settings.rate_limit_default_max,
            ),
        )
