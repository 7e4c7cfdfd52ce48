"""
Directory catalog: turns raw site rows into escaped, verified listings and
keeps them ordered by vote count for the current session.
"""

import html
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from app.features.directory.domain.errors import FetchError
from app.features.directory.domain.models import Listing
from app.features.directory.domain.ports import ListingStore
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

PREVIEW_IMAGE_SEPARATOR = "||"


def escape_text(value: Any) -> str:
    """HTML-escape a stored field; missing values become ""."""
    if not value:
        return ""
    return html.escape(str(value), quote=True)


def listing_from_row(row: Mapping[str, Any]) -> Listing:
    preview_images = row.get("preview_images")
    return Listing(
        timestamp=row.get("timestamp"),
        title=escape_text(row.get("title")),
        link=escape_text(row.get("link")),
        short_description=escape_text(row.get("short_description")),
        long_description=escape_text(row.get("long_description")),
        creator_name=escape_text(row.get("creator_name")),
        about_creator=escape_text(row.get("about_creator")),
        preview_images=(
            escape_text(preview_images).split(PREVIEW_IMAGE_SEPARATOR) if preview_images else []
        ),
        icon_url=escape_text(row.get("icon_url")),
        verified=row.get("verified") is True,
    )


def build_listings(rows: Iterable[Mapping[str, Any]]) -> list[Listing]:
    """Transform store rows, dropping unverified and untitled ones."""
    listings = []
    for row in rows:
        listing = listing_from_row(row)
        if listing.title and listing.verified:
            listings.append(listing)
    return listings


def _timestamp_key(listing: Listing) -> float:
    # Missing timestamps sort after every dated listing
    if listing.timestamp is None:
        return float("-inf")
    return listing.timestamp.timestamp()


def order_by_votes(listings: Iterable[Listing], counts: Mapping[str, int]) -> list[Listing]:
    """Votes descending, then newest first, then title."""
    return sorted(
        listings,
        key=lambda listing: (
            -counts.get(listing.link, 0),
            -_timestamp_key(listing),
            listing.title,
        ),
    )


class DirectoryCatalog:
    """In-memory listing catalog for one session."""

    def __init__(self, store: ListingStore):
        self._store = store
        self.listings: list[Listing] = []
        self.loaded_at: datetime | None = None

    async def fetch(self) -> list[Listing]:
        """Fetch and transform every row. A failed fetch is not retried."""
        try:
            rows = await self._store.fetch_sites()
        except FetchError:
            raise
        except Exception as e:
            logger.error("Listing fetch failed", error=str(e), error_type=type(e).__name__)
            raise FetchError(f"Could not load listings: {e}", operation="fetch_sites") from e

        listings = build_listings(rows)
        logger.info("Listings fetched", rows=len(rows), visible=len(listings))
        return listings

    def replace(self, listings: Iterable[Listing], counts: Mapping[str, int]) -> list[Listing]:
        """Swap in a freshly fetched catalog, ordered by the given counts."""
        self.listings = order_by_votes(listings, counts)
        self.loaded_at = datetime.now()
        return self.listings

    def reorder(self, counts: Mapping[str, int]) -> list[Listing]:
        self.listings = order_by_votes(self.listings, counts)
        return self.listings

    def find_by_title(self, title: str) -> Listing | None:
        """Resolve a deep-linked title; accepts the raw or the escaped form."""
        if not title:
            return None
        escaped = escape_text(title)
        for listing in self.listings:
            if listing.title == title or listing.title == escaped:
                return listing
        return None

    def find_by_identifier(self, identifier: str) -> Listing | None:
        for listing in self.listings:
            if listing.link == identifier:
                return listing
        return None

    def search(self, term: str | None) -> list[Listing]:
        """Case-insensitive title match, keeping catalog order."""
        if not term:
            return list(self.listings)
        needle = term.lower()
        return [
            listing for listing in self.listings if needle in html.unescape(listing.title).lower()
        ]
