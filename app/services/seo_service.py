"""
Page metadata for listing detail views.

Gives the front-end everything it needs to rewrite <title>, the description,
Open Graph / Twitter tags, the canonical link and the JSON-LD block when a
listing is opened, and the defaults to restore when it is closed.
"""

import html
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, Field

from app.config import settings
from app.features.directory.domain.models import Listing

DEFAULT_TITLE = "UBGHub - Unblocked Games Directory"
DEFAULT_DESCRIPTION = (
    "Discover and share unblocked games and sites. UBGHub is a community-driven directory "
    "providing a safe and organized way to access unblocked content."
)


class PageMetadata(BaseModel):
    title: str
    description: str
    canonical_url: str
    image: str
    open_graph: dict[str, str] = Field(default_factory=dict)
    twitter: dict[str, str] = Field(default_factory=dict)
    json_ld: dict[str, Any] | None = None


def listing_url(title: str, base_url: str | None = None) -> str:
    """Deep link for a listing: ?site=<title>, spaces as '+'."""
    base = (base_url or settings.SITE_BASE_URL).rstrip("/")
    encoded = quote(title, safe="!~*'()").replace("%20", "+")
    return f"{base}/?site={encoded}"


def _social_tags(title: str, description: str, url: str, image: str) -> dict[str, str]:
    return {"title": title, "description": description, "url": url, "image": image}


def default_metadata(base_url: str | None = None) -> PageMetadata:
    base = (base_url or settings.SITE_BASE_URL).rstrip("/")
    url = f"{base}/"
    image = f"{base}/ubghub.png"
    tags = _social_tags(DEFAULT_TITLE, DEFAULT_DESCRIPTION, url, image)
    return PageMetadata(
        title=DEFAULT_TITLE,
        description=DEFAULT_DESCRIPTION,
        canonical_url=url,
        image=image,
        open_graph=tags,
        twitter=dict(tags),
    )


def build_listing_metadata(listing: Listing, base_url: str | None = None) -> PageMetadata:
    defaults = default_metadata(base_url)

    # Listing text is stored escaped; URLs and JSON-LD carry the plain title
    plain_title = html.unescape(listing.title)
    url = listing_url(plain_title, base_url)
    title = f"{listing.title} - UBGHub"
    description = listing.long_description or listing.short_description or defaults.description
    image = listing.icon_url or defaults.image

    json_ld: dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "WebPage",
        "name": f"{plain_title} - UBGHub",
        "description": html.unescape(listing.long_description or listing.short_description),
        "url": url,
        "mainEntity": {
            "@type": "WebSite",
            "name": plain_title,
            "url": html.unescape(listing.link),
            "description": html.unescape(listing.short_description),
        },
    }
    if listing.creator_name:
        json_ld["mainEntity"]["author"] = {
            "@type": "Person",
            "name": html.unescape(listing.creator_name),
        }

    tags = _social_tags(title, description, url, image)
    return PageMetadata(
        title=title,
        description=description,
        canonical_url=url,
        image=image,
        open_graph=tags,
        twitter=dict(tags),
        json_ld=json_ld,
    )
