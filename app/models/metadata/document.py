from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ExtractedMetadata(BaseModel):
    """Metadata parsed out of a page's ``<head>``.

    This is the payload stored in both cache tiers (``model_dump()``), so
    every field must stay JSON-serialisable.
    """

    # OpenGraph
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    site_name: Optional[str] = None
    type: Optional[str] = None
    locale: Optional[str] = None
    url: Optional[str] = None

    # Twitter Card
    twitter_card: Optional[str] = None
    twitter_site: Optional[str] = None
    twitter_creator: Optional[str] = None
    twitter_title: Optional[str] = None
    twitter_description: Optional[str] = None
    twitter_image: Optional[str] = None

    # General meta
    favicon: Optional[str] = None
    theme_color: Optional[str] = None
    canonical: Optional[str] = None
    author: Optional[str] = None
    keywords: Optional[str] = None

    raw_meta: dict[str, str] = Field(default_factory=dict)
