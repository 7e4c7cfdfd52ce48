# models/api/vote_request.py
"""
API request models for voting and sign-in.
"""

from pydantic import BaseModel, Field


class VoteRequest(BaseModel):
    """Up-vote a listing."""

    identifier: str = Field(..., min_length=1, description="The listing's link")


class CancelSignInRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=200)
