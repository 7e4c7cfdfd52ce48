"""
Session-scoped directory state.

A DirectoryContext owns everything one visitor's session sees: the listing
catalog, the cached vote-count map, the session gate and any vote parked
behind a sign-in. Routes receive it explicitly; nothing here is global.

Vote count policy:
    A vote is optimistically added to the local count before the write.
    The count is rolled back if the write does not happen. On success the
    optimistic count stands until the next refresh, except when sign-in was
    interactive or a refresh replaced the counts mid-write; then the counts
    are fetched again.
"""

import asyncio

from app.features.directory.domain.errors import AuthRequiredError, FetchError
from app.features.directory.domain.models import Listing, PendingVote, VoteOutcome
from app.features.directory.domain.ports import IdentityProvider, ListingStore, VoteStore
from app.features.directory.services.catalog import DirectoryCatalog
from app.features.directory.services.session_gate import SessionGate
from app.features.directory.services.vote_ledger import VoteLedger
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DirectoryContext:
    def __init__(
        self,
        listing_store: ListingStore,
        vote_store: VoteStore,
        identity_provider: IdentityProvider,
        *,
        collection: str = "ubghub",
        oauth_provider: str = "google",
        redirect_target: str | None = None,
        sign_in_timeout: float | None = 900.0,
    ):
        self.collection = collection
        self.gate = SessionGate(
            identity_provider,
            oauth_provider=oauth_provider,
            redirect_target=redirect_target,
            timeout=sign_in_timeout,
        )
        self.catalog = DirectoryCatalog(listing_store)
        self.ledger = VoteLedger(vote_store, self.gate)

        self.vote_counts: dict[str, int] = {}
        self.counts_version = 0
        self.loaded = False
        self.selected_title: str | None = None

        self.pending_votes: dict[str, asyncio.Task] = {}
        self.vote_results: dict[str, str] = {}
        self._load_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def load_catalog(self) -> list[Listing]:
        """Fetch listings and vote counts together and order the catalog."""
        async with self._load_lock:
            listings, counts = await asyncio.gather(
                self.catalog.fetch(),
                self.ledger.get_counts(self.collection),
            )
            self._replace_counts(counts)
            self.catalog.replace(listings, self.vote_counts)
            self.loaded = True

        logger.info(
            "Catalog loaded",
            collection=self.collection,
            listings=len(self.catalog.listings),
            voted_identifiers=len(counts),
        )
        return self.catalog.listings

    async def ensure_loaded(self) -> list[Listing]:
        if not self.loaded:
            return await self.load_catalog()
        return self.catalog.listings

    def find_listing(self, title: str) -> Listing | None:
        return self.catalog.find_by_title(title)

    def search(self, term: str | None) -> list[Listing]:
        return self.catalog.search(term)

    def select(self, title: str | None) -> Listing | None:
        """Point the session's detail view at a listing (or clear it)."""
        listing = self.find_listing(title) if title else None
        self.selected_title = listing.title if listing else None
        return listing

    # ------------------------------------------------------------------
    # Vote counts
    # ------------------------------------------------------------------

    def count_for(self, identifier: str) -> int:
        return self.vote_counts.get(identifier, 0)

    def _replace_counts(self, counts: dict[str, int]) -> None:
        self.vote_counts = dict(counts)
        self.counts_version += 1

    async def refresh_vote_counts(self, collection: str | None = None) -> dict[str, int]:
        """Replace cached counts with the store's. Raises FetchError."""
        collection = collection or self.collection
        counts = await self.ledger.get_counts(collection)
        if collection == self.collection:
            self._replace_counts(counts)
            self.catalog.reorder(self.vote_counts)
        return dict(counts)

    def _apply_optimistic(self, identifier: str) -> int:
        self.vote_counts[identifier] = self.count_for(identifier) + 1
        return self.counts_version

    def _rollback(self, identifier: str, base_version: int) -> None:
        if self.counts_version != base_version:
            # A refresh already replaced the base; it never held this increment
            return
        remaining = self.count_for(identifier) - 1
        if remaining > 0:
            self.vote_counts[identifier] = remaining
        else:
            self.vote_counts.pop(identifier, None)

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    async def cast_vote(self, identifier: str) -> VoteOutcome:
        """
        Vote for ``identifier`` in this context's collection.

        Raises AuthRequiredError or FetchError; either way the local count
        is left as it was before the call.
        """
        base_version = self._apply_optimistic(identifier)
        succeeded = False
        try:
            receipt = await self.ledger.submit_vote(self.collection, identifier)
            succeeded = True
        finally:
            if not succeeded:
                self._rollback(identifier, base_version)

        if receipt.signed_in:
            # New session: the whole view is rebuilt on next access
            self.loaded = False

        if receipt.signed_in or self.counts_version != base_version:
            try:
                await self.refresh_vote_counts()
            except FetchError as e:
                logger.warning(
                    "Count refresh after vote failed",
                    identifier=identifier,
                    error=str(e),
                )

        return VoteOutcome(identifier=identifier, count=self.count_for(identifier), receipt=receipt)

    async def begin_vote(self, identifier: str) -> VoteOutcome | PendingVote:
        """
        Start a vote without blocking the caller on sign-in.

        Returns the VoteOutcome when the vote completes straight away, or a
        PendingVote carrying the sign-in URL when the vote is parked behind an
        interactive sign-in. The parked vote finishes in the background.
        """
        existing = self.pending_votes.get(identifier)
        if existing is not None and not existing.done():
            return PendingVote(
                identifier=identifier,
                count=self.count_for(identifier),
                sign_in_url=self.gate.sign_in_url,
            )

        if self.gate.awaiting:
            # An open flow would read as "interactive" at once; settle it first if signed in
            await self.gate.current_identity()

        task = asyncio.create_task(self.cast_vote(identifier))
        interactive = asyncio.create_task(self.gate.wait_until_interactive())
        try:
            done, _ = await asyncio.wait({task, interactive}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            interactive.cancel()

        if task in done:
            return task.result()

        self.pending_votes[identifier] = task
        self.vote_results[identifier] = "pending_sign_in"
        task.add_done_callback(lambda finished: self._finish_pending(identifier, finished))

        logger.info("Vote waiting for sign-in", identifier=identifier)
        return PendingVote(
            identifier=identifier,
            count=self.count_for(identifier),
            sign_in_url=self.gate.sign_in_url,
        )

    def _finish_pending(self, identifier: str, task: asyncio.Task) -> None:
        if self.pending_votes.get(identifier) is task:
            del self.pending_votes[identifier]

        if task.cancelled():
            self.vote_results[identifier] = "cancelled"
            return

        error = task.exception()
        if error is None:
            outcome = task.result()
            self.vote_results[identifier] = (
                "recorded" if outcome.receipt.inserted else "duplicate"
            )
        elif isinstance(error, AuthRequiredError):
            self.vote_results[identifier] = "sign_in_required"
            logger.info("Pending vote dropped, sign-in required", identifier=identifier)
        else:
            self.vote_results[identifier] = "failed"
            logger.error(
                "Pending vote failed",
                identifier=identifier,
                error=str(error),
                error_type=type(error).__name__,
            )

    async def sign_out(self) -> None:
        await self.gate.sign_out()
        self.vote_results.clear()
