"""
Domain models for the directory feature.

Listings are pydantic models because they cross the API boundary as-is;
the vote bookkeeping types are plain dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class Listing(BaseModel):
    """One directory entry. Text fields are already HTML-escaped."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime | None = None
    title: str
    link: str
    short_description: str = ""
    long_description: str = ""
    creator_name: str = ""
    about_creator: str = ""
    preview_images: list[str] = Field(default_factory=list)
    icon_url: str = ""
    verified: bool = False

    @field_validator("timestamp", mode="before")
    @classmethod
    def _lenient_timestamp(cls, value):
        # Rows come from a form export; an unreadable timestamp should not drop the listing
        if value is None or isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(str(value))
        except ValueError:
            logger.warning("Unparseable listing timestamp", value=str(value)[:40])
            return None


@dataclass(slots=True, frozen=True)
class Identity:
    """Authenticated user as reported by the identity provider."""

    user_id: str
    email: str | None = None


@dataclass(slots=True, frozen=True)
class VoteReceipt:
    """Result of a single write against the vote store."""

    collection: str
    identifier: str
    user_id: str
    inserted: bool
    signed_in: bool = False

    @property
    def duplicate_ignored(self) -> bool:
        return not self.inserted


@dataclass(slots=True)
class VoteOutcome:
    """What the caller shows after a vote: the receipt plus the local count."""

    identifier: str
    count: int
    receipt: VoteReceipt


@dataclass(slots=True)
class PendingVote:
    """A vote parked behind an interactive sign-in."""

    identifier: str
    count: int
    sign_in_url: str | None
