from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import HttpUrl, TypeAdapter, ValidationError

from app.api.deps import (
    client_address,
    elapsed_ms,
    get_api_key,
    get_metadata_service,
    get_usage_service,
    rate_limited,
    require_api_key,
)
from app.core.config import settings
from app.models.api_keys.document import ApiKeyRecord
from app.models.metadata.schemas import (
    BatchExtractRequest,
    BatchExtractResponse,
    BatchItem,
    ExtractResponse,
    InvalidateResponse,
    MetadataData,
)
from app.models.rate_limit.window import RateLimitDecision
from app.services.metadata.service import MetadataService
from app.services.usage.service import UsageService
from app.workers.fetcher import FetchError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/extract", tags=["extract"])

_url_adapter = TypeAdapter(HttpUrl)


def _normalise_url(url: str) -> str:
    try:
        return str(_url_adapter.validate_python(url))
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False))


# ---------------------------------------------------------------------------
# GET /api/v1/extract
# ---------------------------------------------------------------------------


@router.get("", response_model=ExtractResponse, summary="Extract metadata from a URL")
async def extract(
    request: Request,
    url: str,
    cache: bool = True,
    full_response: bool = False,
    _: RateLimitDecision = Depends(rate_limited("extract")),
    api_key: Optional[ApiKeyRecord] = Depends(get_api_key),
    service: MetadataService = Depends(get_metadata_service),
    usage: UsageService = Depends(get_usage_service),
) -> ExtractResponse:
    """Return OpenGraph, Twitter Card and page metadata for *url*.

    - **200**: metadata returned; ``cached`` tells whether it came from cache
    - **400**: invalid or missing ``url``
    - **401/403**: unusable API key
    - **429**: rate limit exceeded
    - **502**: the page could not be fetched or is not HTML
    """
    normalised_url = _normalise_url(url)

    async def _log(status: int, cached: bool) -> None:
        if api_key is not None:
            await usage.log_usage(
                api_key,
                endpoint="extract",
                status=status,
                latency_ms=elapsed_ms(request),
                cached=cached,
                url=normalised_url,
                user_agent=request.headers.get("user-agent"),
                ip=client_address(request),
            )

    try:
        result = await service.extract(normalised_url, use_cache=cache)
    except FetchError as exc:
        logger.warning("GET /api/v1/extract fetch error for %s: %s", normalised_url, exc)
        await _log(502, cached=False)
        raise

    latency_ms = elapsed_ms(request)
    await _log(200, cached=result.cached)
    return ExtractResponse(
        cached=result.cached,
        latency_ms=latency_ms,
        data=MetadataData.build(normalised_url, result.metadata, full_response),
    )


# ---------------------------------------------------------------------------
# POST /api/v1/extract/batch
# ---------------------------------------------------------------------------


@router.post("/batch", response_model=BatchExtractResponse, summary="Extract metadata for several URLs")
async def extract_batch(
    request: Request,
    body: BatchExtractRequest,
    _: RateLimitDecision = Depends(rate_limited("extract")),
    service: MetadataService = Depends(get_metadata_service),
) -> BatchExtractResponse:
    """Extract up to ``batch_max_urls`` URLs concurrently.

    Each item reports its own success; one unreachable page does not fail
    the batch.
    """
    if len(body.urls) > settings.batch_max_urls:
        raise RequestValidationError(
            [
                {
                    "type": "too_long",
                    "loc": ("body", "urls"),
                    "msg": f"At most {settings.batch_max_urls} URLs per batch",
                    "input": len(body.urls),
                }
            ]
        )

    urls = [str(u) for u in body.urls]
    results = await service.extract_batch(urls)
    items = [
        BatchItem(
            success=True,
            url=r.url,
            cached=r.cached,
            data=MetadataData.build(r.url, r.metadata),
        )
        if r.ok
        else BatchItem(success=False, url=r.url, error=r.error)
        for r in results
    ]
    return BatchExtractResponse(latency_ms=elapsed_ms(request), data=items)


# ---------------------------------------------------------------------------
# DELETE /api/v1/extract/cache
# ---------------------------------------------------------------------------


@router.delete("/cache", response_model=InvalidateResponse, summary="Drop cached metadata for a URL")
async def invalidate_cache(
    url: str,
    api_key: ApiKeyRecord = Depends(require_api_key),
    _: RateLimitDecision = Depends(rate_limited("extract")),
    service: MetadataService = Depends(get_metadata_service),
) -> InvalidateResponse:
    normalised_url = _normalise_url(url)
    await service.invalidate(normalised_url)
    return InvalidateResponse(message=f"Cache cleared for {normalised_url}")
