"""
Supabase-backed identity provider for one browser session.

Holds the session's access token (never persisted), verifies it against the
project JWKS, and starts/ends interactive sign-ins through Supabase Auth.
"""

import asyncio

import jwt

from app.auth.verify import decode_access_token
from app.features.directory.domain.errors import FetchError
from app.features.directory.domain.models import Identity
from app.infrastructure.observability.logging import get_logger
from app.services.supabase_auth_service import (
    AuthSession,
    SupabaseAuthService,
    supabase_auth_service,
)

logger = get_logger(__name__)


class SupabaseIdentityProvider:
    def __init__(self, session_id: str, auth_service: SupabaseAuthService | None = None):
        self.session_id = session_id
        self._auth = auth_service or supabase_auth_service
        self.access_token: str | None = None

    def use_access_token(self, token: str | None) -> None:
        if token and token != self.access_token:
            self.access_token = token

    def use_session(self, session: AuthSession) -> Identity:
        self.access_token = session.access_token
        return Identity(user_id=session.user_id, email=session.email)

    async def get_current_user(self) -> Identity | None:
        if not self.access_token:
            return None

        try:
            claims = await asyncio.to_thread(decode_access_token, self.access_token)
        except jwt.PyJWKClientConnectionError as e:
            logger.error("Could not fetch signing keys", error=str(e))
            raise FetchError(f"Identity provider unreachable: {e}", operation="get_user") from e
        except (jwt.PyJWKClientError, jwt.InvalidTokenError) as e:
            logger.info("Dropping invalid session token", session_id=self.session_id, error=str(e))
            self.access_token = None
            return None

        user_id = claims.get("sub")
        if not user_id:
            return None
        return Identity(user_id=user_id, email=claims.get("email"))

    async def begin_interactive_sign_in(self, provider: str, redirect_target: str | None) -> str:
        return await self._auth.start_sign_in(self.session_id, provider, redirect_target)

    async def sign_out(self) -> None:
        token, self.access_token = self.access_token, None
        if token:
            await self._auth.sign_out(token)
