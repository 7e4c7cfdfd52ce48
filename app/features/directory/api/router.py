"""
Directory routes: browse/search listings, resolve deep links, read vote
counts and cast votes.

Every route works on the caller's session-scoped DirectoryContext.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.auth.session import get_browser_session
from app.features.directory.domain.errors import AuthRequiredError, FetchError
from app.features.directory.domain.models import PendingVote
from app.infrastructure.observability.logging import get_logger
from app.models.api.directory_response import (
    CatalogResponse,
    ListingDetailResponse,
    ListingResponse,
    VoteCountsResponse,
)
from app.models.api.vote_request import VoteRequest
from app.models.api.vote_response import PendingVotesResponse, VoteResponse
from app.services.seo_service import build_listing_metadata
from app.services.session_registry import BrowserSession

logger = get_logger(__name__)

router = APIRouter(tags=["directory"])

LOAD_FAILED_DETAIL = "Error loading sites. Please try again later."
VOTE_FAILED_DETAIL = "Could not record your vote. Please try again later."


def _unavailable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


def _sign_in_required(error: AuthRequiredError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"message": "Please sign in to vote", "sign_in_url": error.sign_in_url},
    )


@router.get("/sites", response_model=CatalogResponse)
async def list_sites(
    q: str | None = Query(default=None, max_length=200, description="Title search"),
    session: BrowserSession = Depends(get_browser_session),
):
    """Catalog ordered by up-votes, optionally filtered by title."""
    context = session.context
    try:
        await context.ensure_loaded()
    except FetchError as e:
        logger.error("Catalog load failed", session_id=session.session_id, error=str(e))
        raise _unavailable(LOAD_FAILED_DETAIL) from None

    listings = context.search(q)
    return CatalogResponse(
        sites=[ListingResponse.from_listing(item, context.count_for(item.link)) for item in listings],
        total=len(listings),
        query=q,
    )


@router.get("/sites/{title:path}", response_model=ListingDetailResponse)
async def get_site(title: str, session: BrowserSession = Depends(get_browser_session)):
    """Resolve a deep-linked listing by title and open it for this session."""
    context = session.context
    try:
        await context.ensure_loaded()
    except FetchError as e:
        logger.error("Catalog load failed", session_id=session.session_id, error=str(e))
        raise _unavailable(LOAD_FAILED_DETAIL) from None

    listing = context.select(title)
    if listing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Site not found")

    return ListingDetailResponse(
        site=ListingResponse.from_listing(listing, context.count_for(listing.link)),
        meta=build_listing_metadata(listing),
    )


@router.get("/votes/pending", response_model=PendingVotesResponse)
async def pending_votes(session: BrowserSession = Depends(get_browser_session)):
    """Votes parked behind a sign-in and the last outcome of each."""
    context = session.context
    return PendingVotesResponse(
        state=context.gate.state.value,
        sign_in_url=context.gate.sign_in_url,
        pending=sorted(context.pending_votes),
        results=dict(context.vote_results),
    )


@router.get("/votes/{collection}", response_model=VoteCountsResponse)
async def vote_counts(collection: str, session: BrowserSession = Depends(get_browser_session)):
    """Fresh vote counts; replaces this session's cached counts."""
    try:
        counts = await session.context.refresh_vote_counts(collection)
    except FetchError as e:
        logger.error("Vote count refresh failed", collection=collection, error=str(e))
        raise _unavailable(LOAD_FAILED_DETAIL) from None

    return VoteCountsResponse(collection=collection, counts=counts)


@router.post("/votes", response_model=VoteResponse)
async def cast_vote(
    payload: VoteRequest,
    response: Response,
    session: BrowserSession = Depends(get_browser_session),
):
    """
    Up-vote a listing.

    200 when the vote is stored (or was already stored). 202 with a
    sign_in_url when the visitor must sign in first; the vote completes once
    the sign-in callback arrives.
    """
    context = session.context
    try:
        await context.ensure_loaded()
    except FetchError as e:
        logger.error("Catalog load failed", session_id=session.session_id, error=str(e))
        raise _unavailable(LOAD_FAILED_DETAIL) from None

    if context.catalog.find_by_identifier(payload.identifier) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Site not found")

    try:
        result = await context.begin_vote(payload.identifier)
    except AuthRequiredError as e:
        raise _sign_in_required(e) from None
    except FetchError as e:
        logger.error(
            "Vote failed",
            session_id=session.session_id,
            identifier=payload.identifier,
            error=str(e),
        )
        raise _unavailable(VOTE_FAILED_DETAIL) from None

    if isinstance(result, PendingVote):
        response.status_code = status.HTTP_202_ACCEPTED
        return VoteResponse(
            status="pending_sign_in",
            identifier=result.identifier,
            upvotes=result.count,
            sign_in_url=result.sign_in_url,
        )

    return VoteResponse(
        status="recorded" if result.receipt.inserted else "duplicate",
        identifier=result.identifier,
        upvotes=result.count,
        signed_in=result.receipt.signed_in,
    )
