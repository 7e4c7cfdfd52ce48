# models/api/directory_response.py
"""
API response models for catalog browsing.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from app.features.directory.domain.models import Listing
from app.services.seo_service import PageMetadata


class ListingResponse(BaseModel):
    """A listing as shown on a card, with its current up-vote count."""

    timestamp: datetime | None = Field(default=None, description="When the listing was submitted")
    title: str = Field(..., description="Display name (HTML-escaped)")
    link: str = Field(..., description="Canonical URL, also the vote identifier")
    short_description: str = ""
    long_description: str = ""
    creator_name: str = ""
    about_creator: str = ""
    preview_images: list[str] = Field(default_factory=list)
    icon_url: str = ""
    upvotes: int = Field(0, ge=0, description="Up-votes known to this session")

    @classmethod
    def from_listing(cls, listing: Listing, upvotes: int) -> "ListingResponse":
        data = listing.model_dump(exclude={"verified"})
        return cls(**data, upvotes=upvotes)


class CatalogResponse(BaseModel):
    sites: list[ListingResponse]
    total: int = Field(..., description="Number of listings returned")
    query: str | None = Field(default=None, description="Search term, if any")


class ListingDetailResponse(BaseModel):
    site: ListingResponse
    meta: PageMetadata


class VoteCountsResponse(BaseModel):
    collection: str
    counts: dict[str, int] = Field(
        default_factory=dict, description="identifier -> count; missing means 0"
    )
