"""Request-level exceptions and their JSON handlers."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.models.common import ErrorResponse, RateLimitedResponse
from app.models.rate_limit.window import RateLimitDecision
from app.workers.fetcher import FetchError

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Missing permission or unusable API key."""

    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RateLimitExceededError(Exception):
    def __init__(self, decision: RateLimitDecision) -> None:
        super().__init__("Rate limit exceeded")
        self.decision = decision


async def _auth_error(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message).model_dump(exclude_none=True),
    )


async def _rate_limited(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    decision = exc.decision
    return JSONResponse(
        status_code=429,
        content=RateLimitedResponse(retryAfter=decision.retry_after).model_dump(),
        headers={**decision.headers(), "Retry-After": str(decision.retry_after)},
    )


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error="Validation error", details=jsonable_encoder(exc.errors())
        ).model_dump(),
    )


async def _fetch_error(request: Request, exc: FetchError) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content=ErrorResponse(error=str(exc)).model_dump(exclude_none=True),
    )


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Internal server error").model_dump(exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, _auth_error)
    app.add_exception_handler(RateLimitExceededError, _rate_limited)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(FetchError, _fetch_error)
    app.add_exception_handler(Exception, _unhandled)
