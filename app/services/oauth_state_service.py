"""
OAuth State Service for the sign-in flow.

Each interactive sign-in gets a random `state` value stored in Redis with a
TTL. The stored payload ties the callback back to the browser session that
started the flow and carries the PKCE verifier needed for the code exchange.
States are single use.
"""

import json
import secrets
from typing import Any

from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

STATE_TTL_SECONDS = 900  # 15 minutes
STATE_KEY_PREFIX = "ubghub_oauth_state"
STATE_LENGTH = 32  # bytes


class OAuthStateError(Exception):
    """Custom exception for OAuth state-related errors."""

    pass


class OAuthStateService:
    def _redis_key(self, state: str) -> str:
        return f"{STATE_KEY_PREFIX}:{state}"

    async def generate_state(self, payload: dict[str, Any]) -> str:
        """
        Generate a state value and store ``payload`` under it.

        Raises:
            OAuthStateError: If the state could not be stored
        """
        state = secrets.token_urlsafe(STATE_LENGTH)
        stored = await fast_redis.set_with_ttl(
            self._redis_key(state), json.dumps(payload), STATE_TTL_SECONDS
        )
        if not stored:
            logger.error("Failed to store OAuth state", session_id=payload.get("session_id"))
            raise OAuthStateError("Failed to store OAuth state")

        logger.info(
            "OAuth state generated",
            session_id=payload.get("session_id"),
            ttl_seconds=STATE_TTL_SECONDS,
        )
        return state

    async def consume_state(self, state: str) -> dict[str, Any] | None:
        """
        Take the payload for ``state``, removing it in the same round trip.

        Returns None for unknown, expired or already used states.
        """
        if not state:
            return None

        raw = await fast_redis.getdel(self._redis_key(state))
        if raw is None:
            logger.warning("OAuth state not found", state_preview=state[:8] + "...")
            return None

        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Corrupt OAuth state payload", state_preview=state[:8] + "...")
            raise OAuthStateError("Corrupt OAuth state payload") from e


oauth_state_service = OAuthStateService()
