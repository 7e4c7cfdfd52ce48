"""
Sitemap generation job.

Writes sitemap.xml for the static site from the verified listings. Runs as a
one-shot worker job (``python -m app.jobs.worker generate_sitemap``).
"""

from pathlib import Path

from app.config import settings
from app.db.pool import db_pool
from app.features.directory.repository import listing_repository
from app.infrastructure.observability.logging import get_logger
from app.services.sitemap_service import build_sitemap

logger = get_logger(__name__)


async def write_sitemap(output_path: str | Path | None = None) -> Path:
    """Query verified sites and write the sitemap. Returns the written path."""
    path = Path(output_path or settings.SITEMAP_OUTPUT_PATH)
    sites = await listing_repository.fetch_verified_sites()
    xml = build_sitemap(sites)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(xml, encoding="utf-8")

    logger.info("Sitemap written", path=str(path), verified_sites=len(sites))
    return path


async def run_sitemap_generation() -> None:
    await db_pool.initialize()
    try:
        await write_sitemap()
    finally:
        await db_pool.close()
