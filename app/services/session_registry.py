"""
In-process registry of browser sessions.

Each visitor (identified by a random cookie value) gets one BrowserSession
holding its DirectoryContext and its identity provider. Sessions are kept in
least-recently-used order. Sessions idle for longer than SESSION_TTL_SECONDS
are evicted on access, and once MAX_BROWSER_SESSIONS is reached the least
recently used one makes room for a new visitor. Evicted sessions have their
pending sign-in cancelled so parked votes fail instead of hanging.
"""

import secrets
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field

from app.config import settings
from app.features.directory.repository import listing_repository, vote_repository
from app.features.directory.services.context import DirectoryContext
from app.infrastructure.observability.logging import get_logger
from app.services.identity_provider import SupabaseIdentityProvider

logger = get_logger(__name__)


@dataclass(slots=True)
class BrowserSession:
    session_id: str
    identity_provider: SupabaseIdentityProvider
    context: DirectoryContext
    created_at: float = field(default_factory=time.monotonic)
    last_seen: float = field(default_factory=time.monotonic)

    def touch(self) -> None:
        self.last_seen = time.monotonic()


SessionFactory = Callable[[str], BrowserSession]


def default_session_factory(session_id: str) -> BrowserSession:
    provider = SupabaseIdentityProvider(session_id)
    context = DirectoryContext(
        listing_repository,
        vote_repository,
        provider,
        collection=settings.VOTE_COLLECTION,
        oauth_provider=settings.OAUTH_PROVIDER,
        redirect_target=settings.SITE_BASE_URL,
        sign_in_timeout=settings.SIGN_IN_TIMEOUT_SECONDS,
    )
    return BrowserSession(session_id=session_id, identity_provider=provider, context=context)


class SessionRegistry:
    def __init__(
        self,
        factory: SessionFactory = default_session_factory,
        ttl_seconds: float | None = None,
        max_sessions: int | None = None,
    ):
        self._factory = factory
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.SESSION_TTL_SECONDS
        self._max_sessions = max(
            1, max_sessions if max_sessions is not None else settings.MAX_BROWSER_SESSIONS
        )
        # Oldest first; touched sessions move to the end
        self._sessions: OrderedDict[str, BrowserSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str | None) -> BrowserSession | None:
        if not session_id:
            return None
        self.purge_expired()
        session = self._sessions.get(session_id)
        if session is not None:
            session.touch()
            self._sessions.move_to_end(session_id)
        return session

    def get_or_create(self, session_id: str | None) -> tuple[BrowserSession, bool]:
        """Return (session, created)."""
        session = self.get(session_id)
        if session is not None:
            return session, False

        self._make_room()
        new_id = secrets.token_urlsafe(24)
        session = self._factory(new_id)
        self._sessions[new_id] = session
        logger.debug("Browser session created", active_sessions=len(self._sessions))
        return session, True

    def _evict(self, session: BrowserSession, reason: str) -> None:
        self._sessions.pop(session.session_id, None)
        session.context.gate.cancel(reason)

    def _make_room(self) -> None:
        evicted = 0
        while len(self._sessions) >= self._max_sessions:
            _, oldest = next(iter(self._sessions.items()))
            self._evict(oldest, "Session evicted")
            evicted += 1
        if evicted:
            logger.info(
                "Least recently used browser sessions evicted",
                count=evicted,
                max_sessions=self._max_sessions,
            )

    def purge_expired(self) -> int:
        # Only the idle head of the ordering needs to be inspected
        cutoff = time.monotonic() - self._ttl
        expired = 0
        while self._sessions:
            _, oldest = next(iter(self._sessions.items()))
            if oldest.last_seen >= cutoff:
                break
            self._evict(oldest, "Session expired")
            expired += 1
        if expired:
            logger.info("Expired browser sessions evicted", count=expired)
        return expired

    def close_all(self) -> int:
        """Drop every session, cancelling open sign-ins. Returns how many were pending."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        return sum(1 for session in sessions if session.context.gate.cancel("Server shutting down"))


session_registry = SessionRegistry()
