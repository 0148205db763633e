from typing import Any, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[Any] = None


class RateLimitedResponse(BaseModel):
    success: bool = False
    error: str = "Rate limit exceeded"
    retryAfter: int
