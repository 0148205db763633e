from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class LookupStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CacheLookup:
    """Outcome of reading one cache tier.

    ``MISS`` means the tier answered and has nothing usable (absent or
    expired).  ``UNAVAILABLE`` means the tier could not answer at all.
    """

    status: LookupStatus
    value: Optional[dict[str, Any]] = None
    tier: Optional[str] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def hit(
        cls,
        value: dict[str, Any],
        tier: str,
        expires_at: Optional[datetime] = None,
    ) -> CacheLookup:
        return cls(LookupStatus.HIT, value, tier, expires_at)

    @classmethod
    def miss(cls, tier: Optional[str] = None) -> CacheLookup:
        return cls(LookupStatus.MISS, None, tier)

    @classmethod
    def unavailable(cls, tier: Optional[str] = None) -> CacheLookup:
        return cls(LookupStatus.UNAVAILABLE, None, tier)

    @property
    def is_hit(self) -> bool:
        return self.status is LookupStatus.HIT
