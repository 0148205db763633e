from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ApiKeyRecord(BaseModel):
    """An API key as stored in the ``api_keys`` collection.

    ``rate_limit`` is requests per window; ``0`` means the service default.
    """

    id: str
    user_id: str
    key: str
    rate_limit: int = 0
    daily_limit: int = 0
    can_extract: bool = True
    can_generate: bool = True
    active: bool = True
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
