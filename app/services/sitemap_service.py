"""
sitemap.xml generation for verified listings.

One <url> for the homepage plus one per verified, titled listing, pointing at
the listing's ?site= deep link.
"""

from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any
from xml.sax.saxutils import escape

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.services.seo_service import listing_url

logger = get_logger(__name__)

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def escape_xml(value: str) -> str:
    return escape(value, _XML_ENTITIES)


def _lastmod(timestamp: Any, fallback: date) -> str:
    if isinstance(timestamp, datetime):
        return timestamp.date().isoformat()
    if isinstance(timestamp, str) and timestamp:
        try:
            return datetime.fromisoformat(timestamp).date().isoformat()
        except ValueError:
            logger.warning("Unparseable site timestamp", value=timestamp[:40])
    return fallback.isoformat()


def _url_entry(loc: str, lastmod: str, changefreq: str, priority: str) -> str:
    return (
        "  <url>\n"
        f"    <loc>{escape_xml(loc)}</loc>\n"
        f"    <lastmod>{lastmod}</lastmod>\n"
        f"    <changefreq>{changefreq}</changefreq>\n"
        f"    <priority>{priority}</priority>\n"
        "  </url>\n"
    )


def build_sitemap(
    sites: Iterable[Mapping[str, Any]],
    base_url: str | None = None,
    today: date | None = None,
) -> str:
    base = (base_url or settings.SITE_BASE_URL).rstrip("/")
    today = today or datetime.now(UTC).date()

    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>\n',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n',
        "  <!-- Homepage -->\n",
        _url_entry(f"{base}/", today.isoformat(), "daily", "1.0"),
    ]

    count = 0
    for site in sites:
        title = site.get("title")
        if not title or site.get("verified") is not True:
            continue
        parts.append(
            _url_entry(
                listing_url(title, base),
                _lastmod(site.get("timestamp"), today),
                "weekly",
                "0.8",
            )
        )
        count += 1

    parts.append("</urlset>\n")
    logger.info("Sitemap built", listing_urls=count, total_urls=count + 1)
    return "".join(parts)
