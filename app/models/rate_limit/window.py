from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


class IdentityNamespace(str, Enum):
    API_KEY = "key"
    IP = "ip"


@dataclass(frozen=True)
class RateLimitIdentity:
    """Who a request is counted against.

    API-key and client-address identities live in separate namespaces, so
    an API key id ``"42"`` and an address ``"42"`` never share a counter.
    """

    namespace: IdentityNamespace
    value: str

    @classmethod
    def for_api_key(cls, key_id: str) -> RateLimitIdentity:
        return cls(IdentityNamespace.API_KEY, key_id)

    @classmethod
    def for_ip(cls, address: str) -> RateLimitIdentity:
        return cls(IdentityNamespace.IP, address)

    @property
    def window_key(self) -> str:
        return f"ratelimit:{self.namespace.value}:{self.value}"


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int
    max_requests: int


@dataclass
class RateWindow:
    """A fixed-window counter; ``reset_at_ms`` is epoch milliseconds."""

    count: int
    reset_at_ms: int


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of one ``RateLimitCoordinator.check`` call.

    ``reset_at`` is in epoch seconds and ``retry_after`` in seconds, both
    rounded up, ready to be exposed as response headers.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    count: int

    @classmethod
    def from_window(
        cls, count: int, reset_at_ms: int, limit: int, now_ms: int
    ) -> RateLimitDecision:
        allowed = count <= limit
        retry_after = 0
        if not allowed:
            retry_after = max(1, math.ceil((reset_at_ms - now_ms) / 1000))
        return cls(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=math.ceil(reset_at_ms / 1000),
            retry_after=retry_after,
            count=count,
        )

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
