from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from app.models.api_keys.document import ApiKeyRecord
from app.models.usage.document import UsageLog
from app.repositories.api_keys.repository import ApiKeyRepository
from app.repositories.usage.repository import UsageRepository

logger = logging.getLogger(__name__)


class UsageService:
    """Records API-key usage once a request's outcome is known."""

    def __init__(self, usage: UsageRepository, api_keys: ApiKeyRepository) -> None:
        self._usage = usage
        self._api_keys = api_keys

    async def log_usage(
        self,
        api_key: ApiKeyRecord,
        endpoint: str,
        status: int,
        latency_ms: int,
        cached: bool,
        url: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> None:
        """Write a usage log and bump the key's ``last_used_at``.

        Failures are logged and swallowed: usage accounting must never
        change the response a caller gets.
        """
        now = datetime.now(timezone.utc)
        log = UsageLog(
            user_id=api_key.user_id,
            api_key_id=api_key.id,
            endpoint=endpoint,
            url=url,
            status=status,
            latency_ms=latency_ms,
            cached=cached,
            user_agent=user_agent,
            ip=ip,
            created_at=now,
        )
        try:
            await self._usage.insert(log)
            await self._api_keys.touch_last_used(api_key.id, now)
        except Exception as exc:
            logger.error("Failed to log usage for key %s: %s", api_key.id, exc)
