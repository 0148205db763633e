"""Page download for metadata extraction.

One ``httpx.AsyncClient`` is shared by every request in the process.  It is
created lazily by :func:`get_http_client` and closed from the app lifespan
through :func:`close_http_client`.  Timeouts and refused connections are
retried with tenacity; anything else fails the fetch straight away.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from tenacity import (
    RetryCallState,
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    wait_exponential,
)

from app.core.config import settings
from app.models.metadata.document import ExtractedMetadata
from app.workers.parser import parse_html

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.ConnectError)
_HTML_CONTENT_TYPES = ("text/html", "application/xhtml")
_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

_http_client: Optional[httpx.AsyncClient] = None


class FetchError(Exception):
    """The page could not be downloaded, or what came back is not HTML."""


def get_http_client() -> httpx.AsyncClient:
    global _http_client  # noqa: PLW0603
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout),
            follow_redirects=True,
            verify=settings.http_verify_ssl,
            headers={
                "User-Agent": settings.http_user_agent,
                "Accept": _ACCEPT,
                "Accept-Language": "en-US,en;q=0.5",
            },
        )
    return _http_client


async def close_http_client() -> None:
    global _http_client  # noqa: PLW0603
    if _http_client is None:
        return
    if not _http_client.is_closed:
        await _http_client.aclose()
        logger.info("Shared HTTP client closed.")
    _http_client = None


def _attempts_exhausted(state: RetryCallState) -> bool:
    # Read on every attempt so a changed setting applies without a reload.
    return state.attempt_number > settings.http_max_retries


@retry(
    retry=retry_if_exception_type(_TRANSIENT_ERRORS),
    stop=_attempts_exhausted,
    wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
)
async def _fetch_with_retry(url: str) -> ExtractedMetadata:
    return await _do_fetch(url)


async def fetch_metadata(url: str) -> ExtractedMetadata:
    """Download *url* and parse the metadata out of its ``<head>``.

    Raises :class:`FetchError` for a non-2xx status, a non-HTML body, an
    unusable URL, or once ``settings.http_max_retries`` retries of a
    transient error have all failed.
    """
    try:
        return await _fetch_with_retry(url)
    except RetryError as exc:
        attempts = exc.last_attempt.attempt_number
        raise FetchError(
            f"Failed to fetch {url} after {attempts} attempts: "
            f"{exc.last_attempt.exception()}"
        ) from exc


def _ensure_html(response: httpx.Response) -> None:
    if not response.is_success:
        raise FetchError(f"HTTP {response.status_code}: {response.reason_phrase}")
    content_type = response.headers.get("content-type", "")
    if not any(kind in content_type for kind in _HTML_CONTENT_TYPES):
        raise FetchError("URL does not return HTML content")


async def _do_fetch(url: str) -> ExtractedMetadata:
    try:
        response = await get_http_client().get(url)
    except _TRANSIENT_ERRORS:
        raise
    except httpx.InvalidURL as exc:
        raise FetchError(f"Invalid URL '{url}': {exc}") from exc
    except httpx.RequestError as exc:
        raise FetchError(f"Request error for '{url}': {exc}") from exc

    _ensure_html(response)
    return parse_html(response.text, str(response.url))
