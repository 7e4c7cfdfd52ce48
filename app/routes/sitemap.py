"""
sitemap.xml served live from the verified sites.
"""

from fastapi import APIRouter, HTTPException, Response, status

from app.db.helpers import DatabaseError
from app.features.directory.repository import listing_repository
from app.infrastructure.observability.logging import get_logger
from app.services.sitemap_service import build_sitemap

logger = get_logger(__name__)

router = APIRouter(tags=["seo"])


@router.get("/sitemap.xml", response_class=Response)
async def sitemap():
    try:
        sites = await listing_repository.fetch_verified_sites()
    except (DatabaseError, RuntimeError) as e:
        logger.error("Sitemap query failed", error=str(e), error_type=type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sitemap temporarily unavailable",
        ) from None

    return Response(
        content=build_sitemap(sites),
        media_type="application/xml",
        headers={"Cache-Control": "public, max-age=3600"},
    )
