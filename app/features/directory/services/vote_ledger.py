"""
Vote ledger accessor.

Reads aggregated up-vote counts and writes votes behind the session gate.
The (site, identifier, user_id) uniqueness lives in the store; a repeated
vote is an ignored insert, reported as success.
"""

from collections import Counter

from app.features.directory.domain.errors import FetchError
from app.features.directory.domain.models import VoteReceipt
from app.features.directory.domain.ports import VoteStore
from app.features.directory.services.session_gate import SessionGate
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class VoteLedger:
    def __init__(self, store: VoteStore, gate: SessionGate):
        self._store = store
        self._gate = gate

    async def get_counts(self, collection: str) -> dict[str, int]:
        """
        Count votes per identifier for ``collection``.

        Identifiers without votes are absent from the result. The map is
        either complete or the call raises FetchError.
        """
        try:
            identifiers = await self._store.fetch_identifiers(collection)
        except FetchError:
            raise
        except Exception as e:
            logger.error(
                "Vote count fetch failed",
                collection=collection,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise FetchError(f"Could not load vote counts: {e}", operation="get_counts") from e

        counts = dict(Counter(identifiers))
        logger.debug("Vote counts fetched", collection=collection, identifiers=len(counts))
        return counts

    async def submit_vote(self, collection: str, identifier: str) -> VoteReceipt:
        """
        Record one vote for the signed-in user.

        Suspends on the session gate when nobody is signed in. Raises
        AuthRequiredError if sign-in is cancelled or fails, FetchError if the
        write fails. No write happens in either case.
        """
        identity, prompted = await self._gate.require_identity()

        try:
            inserted = await self._store.insert_or_ignore(collection, identifier, identity.user_id)
        except FetchError:
            raise
        except Exception as e:
            logger.error(
                "Vote write failed",
                collection=collection,
                identifier=identifier,
                user_id=identity.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise FetchError(f"Could not record vote: {e}", operation="submit_vote") from e

        receipt = VoteReceipt(
            collection=collection,
            identifier=identifier,
            user_id=identity.user_id,
            inserted=inserted,
            signed_in=prompted,
        )

        if receipt.duplicate_ignored:
            logger.info(
                "Duplicate vote ignored",
                collection=collection,
                identifier=identifier,
                user_id=identity.user_id,
            )
        else:
            logger.info(
                "Vote recorded",
                collection=collection,
                identifier=identifier,
                user_id=identity.user_id,
                signed_in=prompted,
            )

        return receipt
