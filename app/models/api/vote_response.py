# models/api/vote_response.py
"""
API response models for voting and sign-in.
"""

from typing import Literal

from pydantic import BaseModel, Field


class VoteResponse(BaseModel):
    status: Literal["recorded", "duplicate", "pending_sign_in"] = Field(
        ..., description="recorded/duplicate are both successes"
    )
    identifier: str
    upvotes: int = Field(..., ge=0, description="Count to display after the vote")
    sign_in_url: str | None = Field(
        default=None, description="Where to send the user when status is pending_sign_in"
    )
    signed_in: bool = Field(default=False, description="Whether this vote required a sign-in")


class PendingVotesResponse(BaseModel):
    state: str = Field(..., description="Session gate state")
    sign_in_url: str | None = None
    pending: list[str] = Field(default_factory=list, description="Identifiers awaiting sign-in")
    results: dict[str, str] = Field(default_factory=dict, description="Last outcome per identifier")


class SessionStatusResponse(BaseModel):
    state: str
    user_id: str | None = None
    email: str | None = None
    cancelled: bool | None = None
