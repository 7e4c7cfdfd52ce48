"""
Repository for the up-votes table.

Uniqueness of (site, identifier, user_id) is a table constraint; inserts use
ON CONFLICT DO NOTHING so a repeated vote affects zero rows instead of raising.
"""

from psycopg import sql

from app.config import settings
from app.db.helpers import execute_query, fetch_all
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class VoteRepository:
    """Raw SQL access to up-vote rows."""

    def __init__(self, table: str | None = None):
        self.table = table or settings.VOTES_TABLE

    async def fetch_identifiers(self, site: str) -> list[str]:
        query = sql.SQL("SELECT identifier FROM {table} WHERE site = %s").format(
            table=sql.Identifier(self.table)
        )
        rows = await fetch_all(query, (site,))
        return [row["identifier"] for row in rows]

    async def insert_or_ignore(self, site: str, identifier: str, user_id: str) -> bool:
        query = sql.SQL(
            """
            INSERT INTO {table} (site, identifier, user_id)
            VALUES (%s, %s, %s)
            ON CONFLICT (site, identifier, user_id) DO NOTHING
            """
        ).format(table=sql.Identifier(self.table))

        affected = await execute_query(query, (site, identifier, user_id))
        logger.debug(
            "Vote insert executed",
            site=site,
            identifier=identifier,
            user_id=user_id,
            affected=affected,
        )
        return affected > 0


vote_repository = VoteRepository()
