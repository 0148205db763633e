"""HTML ``<head>`` metadata parser.

Pure function over an HTML string: OpenGraph, Twitter Card, favicon,
canonical link and a handful of plain ``<meta name=...>`` tags.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from app.models.metadata.document import ExtractedMetadata

_FAVICON_RELS = ("icon", "shortcut icon", "apple-touch-icon")


def _meta(soup: BeautifulSoup, attr: str, *names: str) -> Optional[str]:
    for name in names:
        tag = soup.find("meta", attrs={attr: name})
        if tag is not None:
            content = (tag.get("content") or "").strip()
            if content:
                return content
    return None


def _link_href(soup: BeautifulSoup, rel: str) -> Optional[str]:
    for tag in soup.find_all("link", href=True):
        rels = tag.get("rel") or []
        if isinstance(rels, str):
            rels = rels.split()
        if " ".join(rels).lower() == rel:
            return tag["href"].strip() or None
    return None


def _resolve(value: Optional[str], base_url: str) -> Optional[str]:
    if not value:
        return None
    if value.startswith(("http://", "https://")):
        return value
    try:
        return urljoin(base_url, value)
    except ValueError:
        return None


def parse_html(html: str, base_url: str) -> ExtractedMetadata:
    """Extract page metadata from *html*; relative URLs resolve against *base_url*."""
    soup = BeautifulSoup(html, "html.parser")

    raw_meta: dict[str, str] = {}
    for tag in soup.find_all("meta"):
        name = tag.get("name") or tag.get("property") or tag.get("itemprop")
        content = tag.get("content")
        if name and content:
            raw_meta[name] = content

    og_title = _meta(soup, "property", "og:title")
    og_description = _meta(soup, "property", "og:description")
    og_image = _meta(soup, "property", "og:image", "og:image:url")

    twitter_title = _meta(soup, "name", "twitter:title")
    twitter_description = _meta(soup, "name", "twitter:description")
    twitter_image = _meta(soup, "name", "twitter:image", "twitter:image:src")

    page_title = soup.title.get_text(strip=True) if soup.title else None
    title = (
        og_title
        or twitter_title
        or page_title
        or _meta(soup, "name", "title")
    )
    description = (
        og_description
        or twitter_description
        or _meta(soup, "name", "description")
        or _meta(soup, "itemprop", "description")
    )

    favicon = None
    for rel in _FAVICON_RELS:
        favicon = _link_href(soup, rel)
        if favicon:
            break

    return ExtractedMetadata(
        title=title,
        description=description,
        image=_resolve(og_image or twitter_image, base_url),
        site_name=_meta(soup, "property", "og:site_name"),
        type=_meta(soup, "property", "og:type"),
        locale=_meta(soup, "property", "og:locale"),
        url=_meta(soup, "property", "og:url") or base_url,
        twitter_card=_meta(soup, "name", "twitter:card"),
        twitter_site=_meta(soup, "name", "twitter:site"),
        twitter_creator=_meta(soup, "name", "twitter:creator"),
        twitter_title=twitter_title,
        twitter_description=twitter_description,
        twitter_image=_resolve(twitter_image, base_url),
        favicon=_resolve(favicon, base_url),
        theme_color=_meta(soup, "name", "theme-color"),
        canonical=_link_href(soup, "canonical"),
        author=_meta(soup, "name", "author"),
        keywords=_meta(soup, "name", "keywords"),
        raw_meta=raw_meta,
    )
