from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, HttpUrl

from app.models.metadata.document import ExtractedMetadata


class BatchExtractRequest(BaseModel):
    """Request body for POST /api/v1/extract/batch."""

    urls: list[HttpUrl]


class OpenGraphData(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    site_name: Optional[str] = None
    type: Optional[str] = None
    locale: Optional[str] = None


class TwitterCardData(BaseModel):
    card: Optional[str] = None
    site: Optional[str] = None
    creator: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None


class PageMetaData(BaseModel):
    favicon: Optional[str] = None
    theme_color: Optional[str] = None
    canonical: Optional[str] = None
    author: Optional[str] = None
    keywords: Optional[str] = None


class MetadataData(BaseModel):
    """The ``data`` object of an extraction response.

    Twitter fields fall back to their OpenGraph counterparts, the way
    Twitter itself renders cards.
    """

    url: str
    open_graph: OpenGraphData
    twitter_card: TwitterCardData
    meta: PageMetaData
    raw: Optional[dict[str, str]] = None

    @classmethod
    def build(
        cls, url: str, metadata: ExtractedMetadata, full_response: bool = False
    ) -> MetadataData:
        return cls(
            url=url,
            open_graph=OpenGraphData(
                title=metadata.title,
                description=metadata.description,
                image=metadata.image,
                site_name=metadata.site_name,
                type=metadata.type,
                locale=metadata.locale,
            ),
            twitter_card=TwitterCardData(
                card=metadata.twitter_card,
                site=metadata.twitter_site,
                creator=metadata.twitter_creator,
                title=metadata.twitter_title or metadata.title,
                description=metadata.twitter_description or metadata.description,
                image=metadata.twitter_image or metadata.image,
            ),
            meta=PageMetaData(
                favicon=metadata.favicon,
                theme_color=metadata.theme_color,
                canonical=metadata.canonical,
                author=metadata.author,
                keywords=metadata.keywords,
            ),
            raw=metadata.raw_meta if full_response and metadata.raw_meta else None,
        )


class ExtractResponse(BaseModel):
    success: bool = True
    cached: bool
    latency_ms: int
    data: MetadataData


class BatchItem(BaseModel):
    success: bool
    url: str
    cached: Optional[bool] = None
    data: Optional[MetadataData] = None
    error: Optional[str] = None


class BatchExtractResponse(BaseModel):
    success: bool = True
    latency_ms: int
    data: list[BatchItem]


class InvalidateResponse(BaseModel):
    success: bool = True
    message: str

