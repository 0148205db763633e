from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, field_validator


class CacheEntry(BaseModel):
    """A cached extraction result as stored in the durable tier.

    ``key`` is ``hash_key(url)``; the durable collection holds at most one
    document per key.
    """

    key: str
    url: str
    payload: dict[str, Any]
    fetched_at: datetime
    expires_at: datetime

    @field_validator("fetched_at", "expires_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # MongoDB hands back naive UTC datetimes unless the client is tz-aware.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class FastCacheEnvelope(BaseModel):
    """JSON envelope written to the fast tier.

    Carries ``expires_at`` so a fast-tier copy is subject to the same
    logical expiry as the durable one.
    """

    payload: dict[str, Any]
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
