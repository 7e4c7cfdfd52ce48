"""
Session gate: decides whether a protected operation (a vote) may proceed.

States:
    UNAUTHENTICATED      -> no identity known
    AWAITING_INTERACTIVE -> a sign-in flow is open; callers wait on one future
    AUTHENTICATED        -> the provider reported an identity

The identity provider is queried when a protected operation starts, never
ahead of time. At most one interactive flow is open per gate; concurrent
operations attach to it. The flow ends in exactly one of: complete_sign_in
(future resolved), cancel/fail/timeout (future rejected with
AuthRequiredError).
"""

import asyncio
from enum import Enum

from app.features.directory.domain.errors import AuthRequiredError
from app.features.directory.domain.models import Identity
from app.features.directory.domain.ports import IdentityProvider
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class GateState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_INTERACTIVE = "awaiting_interactive"
    AUTHENTICATED = "authenticated"


def _consume_exception(future: asyncio.Future) -> None:
    # A flow can be rejected with nobody left waiting; mark the exception retrieved
    if not future.cancelled():
        future.exception()


class SessionGate:
    def __init__(
        self,
        provider: IdentityProvider,
        *,
        oauth_provider: str = "google",
        redirect_target: str | None = None,
        timeout: float | None = 900.0,
    ):
        self._provider = provider
        self._oauth_provider = oauth_provider
        self._redirect_target = redirect_target
        self._timeout = timeout

        self.state = GateState.UNAUTHENTICATED
        self.identity: Identity | None = None
        self.sign_in_url: str | None = None

        self._pending: asyncio.Future | None = None
        self._interactive_started = asyncio.Event()

    @property
    def awaiting(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def current_identity(self) -> Identity | None:
        """Ask the provider who is signed in right now."""
        identity = await self._provider.get_current_user()
        if identity is not None:
            if self.awaiting:
                # Signed in some other way (e.g. a bearer token); release the waiters
                self.complete_sign_in(identity)
            else:
                self.identity = identity
                self.state = GateState.AUTHENTICATED
        elif self.state is GateState.AUTHENTICATED:
            logger.info("Session no longer authenticated", user_id=self.identity.user_id)
            self.state = GateState.UNAUTHENTICATED
            self.identity = None
        return identity

    async def require_identity(self) -> tuple[Identity, bool]:
        """
        Return (identity, prompted).

        prompted is True when the identity came from an interactive sign-in,
        which tells the caller its cached view is stale.
        """
        identity = await self.current_identity()
        if identity is not None:
            return identity, False
        return await self.wait_for_sign_in(), True

    async def wait_for_sign_in(self) -> Identity:
        """Open (or join) the interactive flow and suspend until it resolves."""
        if self.awaiting:
            pending = self._pending
        else:
            pending = self._open_flow()
            await self._start_provider_flow(pending)

        try:
            return await asyncio.wait_for(asyncio.shield(pending), timeout=self._timeout)
        except TimeoutError:
            if pending is self._pending:
                self.cancel("Sign-in timed out")
            raise AuthRequiredError("Sign-in timed out", sign_in_url=None) from None

    async def wait_until_interactive(self) -> str | None:
        """Resolve once an interactive flow has been opened; returns its URL."""
        await self._interactive_started.wait()
        return self.sign_in_url

    def _open_flow(self) -> asyncio.Future:
        # Published before the provider is awaited so concurrent callers join it
        pending = asyncio.get_running_loop().create_future()
        pending.add_done_callback(_consume_exception)
        self._pending = pending
        self.state = GateState.AWAITING_INTERACTIVE
        self.sign_in_url = None
        return pending

    async def _start_provider_flow(self, pending: asyncio.Future) -> None:
        try:
            sign_in_url = await self._provider.begin_interactive_sign_in(
                self._oauth_provider, self._redirect_target
            )
        except Exception as e:
            logger.error(
                "Could not start interactive sign-in",
                provider=self._oauth_provider,
                error=str(e),
                error_type=type(e).__name__,
            )
            if pending is self._pending:
                self.fail(e)
            raise AuthRequiredError("Could not start sign-in") from e

        if pending is not self._pending:
            # Resolved (or cancelled) while the provider call was in flight
            return

        self.sign_in_url = sign_in_url
        self._interactive_started.set()
        logger.info("Interactive sign-in started", provider=self._oauth_provider)

    def complete_sign_in(self, identity: Identity) -> None:
        """Signed-in notification from the identity provider."""
        self.identity = identity
        self.state = GateState.AUTHENTICATED
        pending, self._pending = self._pending, None
        self._reset_flow()

        if pending is not None and not pending.done():
            pending.set_result(identity)
            logger.info("Interactive sign-in completed", user_id=identity.user_id)
        else:
            logger.info("Signed in without a pending operation", user_id=identity.user_id)

    def cancel(self, reason: str = "Authentication cancelled") -> bool:
        """User closed the sign-in flow. Returns True if a flow was pending."""
        return self._reject(AuthRequiredError(reason, sign_in_url=self.sign_in_url))

    def fail(self, error: Exception) -> bool:
        """The sign-in flow errored."""
        rejection = AuthRequiredError(f"Sign-in failed: {error}", sign_in_url=self.sign_in_url)
        rejection.__cause__ = error
        return self._reject(rejection)

    def _reject(self, rejection: AuthRequiredError) -> bool:
        pending, self._pending = self._pending, None
        self._reset_flow()
        if self.state is GateState.AWAITING_INTERACTIVE:
            self.state = GateState.UNAUTHENTICATED

        if pending is None or pending.done():
            return False

        pending.set_exception(rejection)
        logger.info("Interactive sign-in rejected", reason=str(rejection))
        return True

    def _reset_flow(self) -> None:
        self.sign_in_url = None
        self._interactive_started.clear()

    async def sign_out(self) -> None:
        self.cancel("Signed out")
        await self._provider.sign_out()
        self.identity = None
        self.state = GateState.UNAUTHENTICATED
