from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from app.models.metadata.document import ExtractedMetadata
from app.services.cache.service import CacheCoordinator
from app.workers.fetcher import fetch_metadata

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    url: str
    metadata: Optional[ExtractedMetadata] = None
    cached: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.metadata is not None


class MetadataService:
    """Cache-then-fetch orchestration for metadata extraction."""

    def __init__(self, cache: CacheCoordinator) -> None:
        self._cache = cache

    async def extract(self, url: str, use_cache: bool = True) -> ExtractionResult:
        """Return metadata for *url*, from cache when possible.

        The fetcher is only called on a confirmed miss (or when the caller
        opts out of the cache), and a fresh result is written back.

        Raises:
            FetchError: propagated from the fetcher on network failure.
        """
        if use_cache:
            payload = await self._cache.get(url)
            if payload is not None:
                try:
                    return ExtractionResult(
                        url, ExtractedMetadata.model_validate(payload), cached=True
                    )
                except ValidationError:
                    logger.warning("Ignoring unreadable cached metadata for %s", url)

        metadata = await fetch_metadata(url)
        if use_cache:
            await self._cache.set(url, metadata.model_dump())
        return ExtractionResult(url, metadata, cached=False)

    async def extract_batch(self, urls: list[str]) -> list[ExtractionResult]:
        """Extract every URL concurrently; one failure does not sink the batch."""
        outcomes = await asyncio.gather(
            *(self.extract(url) for url in urls), return_exceptions=True
        )
        results = []
        for url, outcome in zip(urls, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Batch extraction failed for %s: %s", url, outcome)
                results.append(ExtractionResult(url, error=str(outcome)))
            else:
                results.append(outcome)
        return results

    async def invalidate(self, url: str) -> None:
        await self._cache.invalidate(url)
