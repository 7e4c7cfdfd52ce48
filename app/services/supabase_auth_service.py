"""
Supabase Auth client for the interactive sign-in flow.

Handles the OAuth (PKCE) authorize URL, the authorization-code exchange and
logout against the Supabase Auth REST API. Tokens are verified locally with
the project JWKS (see app.auth.verify).
"""

import base64
import hashlib
import secrets
from typing import Any
from urllib.parse import urlencode

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.services.oauth_state_service import OAuthStateError, oauth_state_service

logger = get_logger(__name__)

REQUEST_TIMEOUT = 10  # seconds
SUPPORTED_PROVIDERS = {"google"}


class SupabaseAuthError(Exception):
    """Custom exception for Supabase Auth failures."""

    def __init__(
        self, message: str, error_code: str | None = None, response_data: dict | None = None
    ):
        super().__init__(message)
        self.error_code = error_code
        self.response_data = response_data or {}


class AuthSession:
    """
    The parts of a Supabase token response this service uses.

    Expiry is enforced through the access token's `exp` claim on every
    verification.
    """

    def __init__(self, data: dict):
        user = data.get("user") or {}
        self.access_token = data.get("access_token")
        self.user_id = user.get("id")
        self.email = user.get("email")

    def is_valid(self) -> bool:
        return bool(self.access_token and self.user_id)


def _code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class SupabaseAuthService:
    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": settings.SUPABASE_ANON_KEY}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def start_sign_in(
        self, session_id: str, provider: str, redirect_target: str | None = None
    ) -> str:
        """
        Begin an OAuth sign-in for a browser session.

        Returns:
            str: The Supabase authorize URL the browser must open

        Raises:
            SupabaseAuthError: Unsupported provider or state storage failure
        """
        if provider not in SUPPORTED_PROVIDERS:
            raise SupabaseAuthError(f"Unsupported sign-in provider: {provider}", "bad_provider")

        code_verifier = secrets.token_urlsafe(64)
        try:
            state = await oauth_state_service.generate_state(
                {
                    "session_id": session_id,
                    "code_verifier": code_verifier,
                    "redirect_target": redirect_target or settings.SITE_BASE_URL,
                }
            )
        except OAuthStateError as e:
            raise SupabaseAuthError(f"Could not start sign-in: {e}", "state_error") from e

        redirect_to = f"{settings.auth_callback_url()}?{urlencode({'state': state})}"
        params = {
            "provider": provider,
            "redirect_to": redirect_to,
            "code_challenge": _code_challenge(code_verifier),
            "code_challenge_method": "s256",
        }
        url = f"{settings.auth_url('authorize')}?{urlencode(params)}"

        logger.info(
            "Sign-in URL generated",
            session_id=session_id,
            provider=provider,
            state_preview=state[:8] + "...",
        )
        return url

    async def resolve_state(self, state: str) -> dict[str, Any]:
        """
        Consume the callback state. Each state resolves at most once.

        Returns:
            The payload stored by start_sign_in (session_id, code_verifier,
            redirect_target)

        Raises:
            SupabaseAuthError: Unknown, expired or unreadable state
        """
        try:
            payload = await oauth_state_service.consume_state(state)
        except OAuthStateError as e:
            raise SupabaseAuthError(str(e), "state_error") from e

        if payload is None:
            raise SupabaseAuthError("Sign-in state expired or unknown", "invalid_state")
        return payload

    async def exchange_code(self, code: str, code_verifier: str) -> AuthSession:
        url = f"{settings.auth_url('token')}?grant_type=pkce"
        body = {"auth_code": code, "code_verifier": code_verifier}

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(url, json=body, headers=self._headers())
        except httpx.RequestError as e:
            logger.error(
                "Network error during code exchange",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise SupabaseAuthError(f"Network error during code exchange: {e}") from e

        if response.status_code != 200:
            data = _safe_json(response)
            logger.warning(
                "Code exchange rejected",
                status_code=response.status_code,
                error_code=data.get("error_code") or data.get("error"),
            )
            raise SupabaseAuthError(
                data.get("msg") or data.get("error_description") or "Code exchange failed",
                error_code=data.get("error_code") or data.get("error"),
                response_data=data,
            )

        session = AuthSession(response.json())
        if not session.is_valid():
            raise SupabaseAuthError("Supabase returned an incomplete session", "invalid_session")

        logger.info("Supabase session established", user_id=session.user_id)
        return session

    async def sign_out(self, access_token: str) -> None:
        """Revoke the session server-side. Failures are logged, not raised."""
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(
                    settings.auth_url("logout"), headers=self._headers(access_token)
                )
            if response.status_code >= 400:
                logger.warning("Supabase logout rejected", status_code=response.status_code)
        except httpx.RequestError as e:
            logger.warning("Network error during logout", error=str(e))


def _safe_json(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


supabase_auth_service = SupabaseAuthService()
