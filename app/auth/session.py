"""
Browser-session dependency.

Resolves the caller's BrowserSession from the session cookie (creating one
and setting the cookie when missing) and attaches a bearer token, if sent,
to the session's identity provider.
"""

from fastapi import Depends, Request, Response

from app.auth.verify import bearer_token
from app.config import settings
from app.services.session_registry import BrowserSession, SessionRegistry, session_registry


def get_session_registry() -> SessionRegistry:
    return session_registry


def get_browser_session(
    request: Request,
    response: Response,
    token: str | None = Depends(bearer_token),
    registry: SessionRegistry = Depends(get_session_registry),
) -> BrowserSession:
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    session, created = registry.get_or_create(session_id)

    if created:
        response.set_cookie(
            settings.SESSION_COOKIE_NAME,
            session.session_id,
            max_age=settings.SESSION_TTL_SECONDS,
            httponly=True,
            secure=settings.environment == "production",
            samesite="lax",
        )

    session.identity_provider.use_access_token(token)
    return session
