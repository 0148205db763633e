from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.models.metadata.document import ExtractedMetadata
from app.services.cache.service import CacheCoordinator
from app.services.metadata.service import MetadataService
from app.workers.fetcher import FetchError, fetch_metadata
from app.workers.parser import parse_html

_HTML = """<!DOCTYPE html>
<html><head>
  <title> Fallback title </title>
  <meta property="og:title" content="OG Title">
  <meta property="og:description" content="OG description">
  <meta property="og:image" content="/img/cover.png">
  <meta property="og:site_name" content="Example">
  <meta property="og:type" content="article">
  <meta property="og:locale" content="en_US">
  <meta name="twitter:card" content="summary_large_image">
  <meta name="twitter:site" content="@example">
  <meta name="twitter:creator" content="@author">
  <meta name="theme-color" content="#ffffff">
  <meta name="author" content="Jane Doe">
  <meta name="keywords" content="a, b">
  <link rel="shortcut icon" href="/favicon.ico">
  <link rel="canonical" href="https://example.com/post">
</head><body>Hello</body></html>
"""


def _html_response(url: str, html: str = _HTML, status: int = 200, content_type: str = "text/html; charset=utf-8") -> httpx.Response:
    return httpx.Response(
        status,
        text=html,
        headers={"content-type": content_type},
        request=httpx.Request("GET", url),
    )


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------


class TestParser:
    def test_open_graph_and_twitter(self):
        meta = parse_html(_HTML, "https://example.com/post")
        assert meta.title == "OG Title"
        assert meta.description == "OG description"
        assert meta.site_name == "Example"
        assert meta.type == "article"
        assert meta.locale == "en_US"
        assert meta.twitter_card == "summary_large_image"
        assert meta.twitter_site == "@example"
        assert meta.twitter_creator == "@author"

    def test_relative_urls_are_resolved(self):
        meta = parse_html(_HTML, "https://example.com/post")
        assert meta.image == "https://example.com/img/cover.png"
        assert meta.favicon == "https://example.com/favicon.ico"

    def test_general_meta(self):
        meta = parse_html(_HTML, "https://example.com/post")
        assert meta.canonical == "https://example.com/post"
        assert meta.theme_color == "#ffffff"
        assert meta.author == "Jane Doe"
        assert meta.keywords == "a, b"
        assert meta.url == "https://example.com/post"

    def test_raw_meta_collects_named_tags(self):
        meta = parse_html(_HTML, "https://example.com/post")
        assert meta.raw_meta["og:title"] == "OG Title"
        assert meta.raw_meta["twitter:card"] == "summary_large_image"

    def test_title_and_description_fallbacks(self):
        html = (
            "<html><head><title>Plain</title>"
            '<meta name="description" content="Plain description"></head></html>'
        )
        meta = parse_html(html, "https://example.com/")
        assert meta.title == "Plain"
        assert meta.description == "Plain description"
        assert meta.image is None

    def test_twitter_image_used_when_no_og_image(self):
        html = '<html><head><meta name="twitter:image" content="https://cdn.test/t.png"></head></html>'
        meta = parse_html(html, "https://example.com/")
        assert meta.image == "https://cdn.test/t.png"
        assert meta.twitter_image == "https://cdn.test/t.png"

    def test_empty_document(self):
        meta = parse_html("", "https://example.com/")
        assert meta.title is None
        assert meta.raw_meta == {}
        assert meta.url == "https://example.com/"


# ---------------------------------------------------------------------------
# Fetcher tests
# ---------------------------------------------------------------------------


class TestFetcher:
    async def test_successful_fetch(self):
        with patch("app.workers.fetcher.get_http_client") as mock_get:
            mock_client = AsyncMock()
            mock_client.get = AsyncMock(return_value=_html_response("https://example.com/post"))
            mock_get.return_value = mock_client
            result = await fetch_metadata("https://example.com/post")
        assert result.title == "OG Title"
        assert result.url == "https://example.com/post"

    async def test_invalid_url_raises_fetch_error(self):
        with patch("app.workers.fetcher.get_http_client") as mock_get:
            mock_client = AsyncMock()
            mock_client.get = AsyncMock(side_effect=httpx.InvalidURL("invalid url"))
            mock_get.return_value = mock_client
            with pytest.raises(FetchError, match="Invalid URL"):
                await fetch_metadata("not-a-url")

    async def test_non_2xx_raises_fetch_error(self):
        with patch("app.workers.fetcher.get_http_client") as mock_get:
            mock_client = AsyncMock()
            mock_client.get = AsyncMock(
                return_value=_html_response("https://example.com/404", status=404)
            )
            mock_get.return_value = mock_client
            with pytest.raises(FetchError, match="HTTP 404"):
                await fetch_metadata("https://example.com/404")

    async def test_non_html_raises_fetch_error(self):
        with patch("app.workers.fetcher.get_http_client") as mock_get:
            mock_client = AsyncMock()
            mock_client.get = AsyncMock(
                return_value=_html_response(
                    "https://example.com/data.json", html="{}", content_type="application/json"
                )
            )
            mock_get.return_value = mock_client
            with pytest.raises(FetchError, match="does not return HTML"):
                await fetch_metadata("https://example.com/data.json")

    async def test_timeout_retries_and_raises(self):
        with (
            patch("app.workers.fetcher.settings") as mock_settings,
            patch("asyncio.sleep", new_callable=AsyncMock),
            patch("app.workers.fetcher._do_fetch", new_callable=AsyncMock) as mock_fetch,
        ):
            mock_settings.http_max_retries = 1
            mock_fetch.side_effect = httpx.TimeoutException("timed out")
            with pytest.raises(FetchError):
                await fetch_metadata("https://example.com/")
        assert mock_fetch.call_count == 2

    async def test_connect_error_retries_and_raises(self):
        with (
            patch("app.workers.fetcher.settings") as mock_settings,
            patch("asyncio.sleep", new_callable=AsyncMock),
            patch("app.workers.fetcher._do_fetch", new_callable=AsyncMock) as mock_fetch,
        ):
            mock_settings.http_max_retries = 1
            mock_fetch.side_effect = httpx.ConnectError("refused")
            with pytest.raises(FetchError):
                await fetch_metadata("https://example.com/")
        assert mock_fetch.call_count == 2


# ---------------------------------------------------------------------------
# MetadataService tests
# ---------------------------------------------------------------------------


class TestMetadataService:
    @pytest.fixture
    def cache(self):
        return AsyncMock(spec=CacheCoordinator)

    @pytest.fixture
    def service(self, cache):
        return MetadataService(cache)

    async def test_cache_hit_skips_fetch(self, service, cache):
        cache.get.return_value = {"title": "Cached"}
        with patch(
            "app.services.metadata.service.fetch_metadata", new_callable=AsyncMock
        ) as mock_fetch:
            result = await service.extract("https://example.com/")
        assert result.cached is True
        assert result.metadata.title == "Cached"
        mock_fetch.assert_not_called()

    async def test_miss_fetches_and_writes_back(self, service, cache):
        cache.get.return_value = None
        meta = ExtractedMetadata(title="Fresh")
        with patch(
            "app.services.metadata.service.fetch_metadata",
            new_callable=AsyncMock,
            return_value=meta,
        ) as mock_fetch:
            result = await service.extract("https://example.com/")
        assert result.cached is False
        mock_fetch.assert_awaited_once_with("https://example.com/")
        cache.set.assert_awaited_once_with("https://example.com/", meta.model_dump())

    async def test_cache_disabled_bypasses_both_directions(self, service, cache):
        with patch(
            "app.services.metadata.service.fetch_metadata",
            new_callable=AsyncMock,
            return_value=ExtractedMetadata(title="Fresh"),
        ):
            result = await service.extract("https://example.com/", use_cache=False)
        assert result.cached is False
        cache.get.assert_not_called()
        cache.set.assert_not_called()

    async def test_fetch_error_propagates_and_nothing_cached(self, service, cache):
        cache.get.return_value = None
        with patch(
            "app.services.metadata.service.fetch_metadata",
            new_callable=AsyncMock,
            side_effect=FetchError("network error"),
        ):
            with pytest.raises(FetchError, match="network error"):
                await service.extract("https://example.com/")
        cache.set.assert_not_called()

    async def test_batch_isolates_failures(self, service, cache):
        cache.get.return_value = None

        async def fake_fetch(url: str) -> ExtractedMetadata:
            if "bad" in url:
                raise FetchError("HTTP 500: Internal Server Error")
            return ExtractedMetadata(title=url)

        with patch("app.services.metadata.service.fetch_metadata", side_effect=fake_fetch):
            results = await service.extract_batch(["https://good.test/", "https://bad.test/"])

        assert results[0].ok and results[0].metadata.title == "https://good.test/"
        assert not results[1].ok
        assert "HTTP 500" in results[1].error

    async def test_invalidate_delegates_to_cache(self, service, cache):
        await service.invalidate("https://example.com/")
        cache.invalidate.assert_awaited_once_with("https://example.com/")
