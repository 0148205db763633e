from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UsageLog(BaseModel):
    """One request made with an API key, written after the response is decided."""

    user_id: str
    api_key_id: str
    endpoint: str
    url: Optional[str] = None
    status: int
    latency_ms: int
    cached: bool
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    created_at: datetime
