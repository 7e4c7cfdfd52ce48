"""
Sign-in routes: the Supabase OAuth callback, cancelling an open sign-in,
signing out and the session status.

The callback is reached by the browser after the provider redirects back. The
OAuth state names the browser session whose gate is waiting; resolving that
gate lets any vote parked behind the sign-in finish.
"""

from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse

from app.auth.session import get_browser_session, get_session_registry
from app.config import settings
from app.features.directory.domain.errors import FetchError
from app.infrastructure.observability.logging import get_logger
from app.models.api.vote_request import CancelSignInRequest
from app.models.api.vote_response import SessionStatusResponse
from app.services.session_registry import BrowserSession, SessionRegistry
from app.services.supabase_auth_service import SupabaseAuthError, supabase_auth_service

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _redirect(target: str | None, outcome: str) -> RedirectResponse:
    base = target or settings.SITE_BASE_URL
    separator = "&" if "?" in base else "?"
    return RedirectResponse(f"{base}{separator}{urlencode({'sign_in': outcome})}", status_code=302)


def _status(session: BrowserSession, cancelled: bool | None = None) -> SessionStatusResponse:
    gate = session.context.gate
    identity = gate.identity
    return SessionStatusResponse(
        state=gate.state.value,
        user_id=identity.user_id if identity else None,
        email=identity.email if identity else None,
        cancelled=cancelled,
    )


@router.get("/callback")
async def oauth_callback(
    request: Request,
    code: str | None = Query(default=None, description="Authorization code from Supabase"),
    state: str | None = Query(default=None, description="OAuth state parameter"),
    error: str | None = Query(default=None),
    error_description: str | None = Query(default=None),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Finish (or abort) the interactive sign-in for the session named by state.

    Always redirects the browser back to the site with ?sign_in=ok|cancelled|failed.
    """
    if not state:
        logger.warning("OAuth callback without state", provider_error=error)
        return _redirect(None, "failed")

    try:
        payload = await supabase_auth_service.resolve_state(state)
    except SupabaseAuthError as e:
        logger.warning(
            "OAuth callback with unusable state",
            state_preview=state[:8] + "...",
            error=str(e),
            error_code=e.error_code,
        )
        return _redirect(None, "failed")

    redirect_target = payload.get("redirect_target")
    session = registry.get(payload.get("session_id"))
    if session is None:
        logger.warning("OAuth callback for unknown or expired session")
        return _redirect(redirect_target, "failed")

    cookie_session = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if cookie_session and cookie_session != session.session_id:
        logger.warning("OAuth callback from a different browser session")
        session.context.gate.cancel("Sign-in completed in another browser session")
        return _redirect(redirect_target, "failed")

    gate = session.context.gate

    if error or not code:
        if error == "access_denied":
            gate.cancel("Sign-in cancelled at the provider")
            return _redirect(redirect_target, "cancelled")
        gate.fail(SupabaseAuthError(error_description or error or "Missing authorization code", error))
        return _redirect(redirect_target, "failed")

    try:
        auth_session = await supabase_auth_service.exchange_code(code, payload["code_verifier"])
    except SupabaseAuthError as e:
        logger.error(
            "Sign-in code exchange failed",
            session_id=session.session_id,
            error=str(e),
            error_code=e.error_code,
        )
        gate.fail(e)
        return _redirect(redirect_target, "failed")

    identity = session.identity_provider.use_session(auth_session)
    gate.complete_sign_in(identity)

    logger.info("Browser session signed in", session_id=session.session_id, user_id=identity.user_id)
    return _redirect(redirect_target, "ok")


@router.post("/cancel", response_model=SessionStatusResponse)
async def cancel_sign_in(
    body: CancelSignInRequest | None = None,
    session: BrowserSession = Depends(get_browser_session),
):
    """The visitor closed the sign-in window; parked votes fail."""
    reason = (body.reason if body else None) or "Authentication cancelled"
    cancelled = session.context.gate.cancel(reason)
    logger.info("Sign-in cancel requested", session_id=session.session_id, had_pending=cancelled)
    return _status(session, cancelled=cancelled)


@router.post("/sign-out", response_model=SessionStatusResponse)
async def sign_out(session: BrowserSession = Depends(get_browser_session)):
    await session.context.sign_out()
    logger.info("Browser session signed out", session_id=session.session_id)
    return _status(session)


@router.get("/status", response_model=SessionStatusResponse)
async def session_status(session: BrowserSession = Depends(get_browser_session)):
    """Who this session is signed in as, asking the provider afresh."""
    try:
        await session.context.gate.current_identity()
    except FetchError as e:
        logger.error("Identity lookup failed", session_id=session.session_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sign-in service temporarily unavailable",
        ) from None
    return _status(session)
