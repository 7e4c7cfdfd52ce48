"""
Repository for the sites table (read-only).
"""

from typing import Any

from psycopg import sql

from app.config import settings
from app.db.helpers import fetch_all
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ListingRepository:
    """Raw SQL access to directory listings."""

    def __init__(self, table: str | None = None):
        self.table = table or settings.SITES_TABLE

    async def fetch_sites(self) -> list[dict[str, Any]]:
        query = sql.SQL(
            """
            SELECT
                timestamp,
                title,
                link,
                short_description,
                long_description,
                creator_name,
                about_creator,
                preview_images,
                icon_url,
                verified
            FROM {table}
            """
        ).format(table=sql.Identifier(self.table))

        rows = await fetch_all(query)
        logger.debug("Fetched site rows", table=self.table, count=len(rows))
        return rows

    async def fetch_verified_sites(self) -> list[dict[str, Any]]:
        """Title and timestamp of every verified site, for the sitemap."""
        query = sql.SQL(
            """
            SELECT title, verified, timestamp
            FROM {table}
            WHERE verified = true
            """
        ).format(table=sql.Identifier(self.table))

        return await fetch_all(query)


listing_repository = ListingRepository()
