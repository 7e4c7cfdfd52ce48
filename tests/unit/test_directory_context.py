import asyncio

import pytest

from app.features.directory.domain.errors import AuthRequiredError, FetchError
from app.features.directory.domain.models import PendingVote, VoteOutcome
from app.features.directory.services.context import DirectoryContext
from app.features.directory.services.session_gate import GateState

ALPHA = "https://alpha.example"
BETA = "https://beta.example"


def _context(listing_store, vote_store, provider) -> DirectoryContext:
    return DirectoryContext(
        listing_store,
        vote_store,
        provider,
        collection="ubghub",
        redirect_target="https://ubghub.org",
        sign_in_timeout=5.0,
    )


@pytest.mark.asyncio
async def test_load_catalog_orders_and_filters(listing_store, vote_store, identity_provider):
    context = _context(listing_store, vote_store, identity_provider)

    listings = await context.load_catalog()

    # No votes: newest first, unverified Gamma hidden
    assert [listing.title for listing in listings] == ["Beta", "Alpha"]
    assert context.loaded is True
    assert context.vote_counts == {}


@pytest.mark.asyncio
async def test_load_catalog_orders_by_votes(fakes, listing_store, identity_provider):
    votes = fakes.VoteStore({("ubghub", ALPHA, "u1"), ("ubghub", ALPHA, "u2")})
    context = _context(listing_store, votes, identity_provider)

    listings = await context.load_catalog()

    assert [listing.title for listing in listings] == ["Alpha", "Beta"]
    assert context.count_for(ALPHA) == 2
    assert context.count_for(BETA) == 0


@pytest.mark.asyncio
async def test_load_failure_leaves_context_unloaded(fakes, vote_store, identity_provider):
    context = _context(fakes.ListingStore(error=OSError("down")), vote_store, identity_provider)

    with pytest.raises(FetchError):
        await context.load_catalog()

    assert context.loaded is False
    assert context.catalog.listings == []


@pytest.mark.asyncio
async def test_ensure_loaded_fetches_once(listing_store, vote_store, identity_provider):
    context = _context(listing_store, vote_store, identity_provider)

    await context.ensure_loaded()
    await context.ensure_loaded()

    assert listing_store.calls == 1


@pytest.mark.asyncio
async def test_select_and_search(listing_store, vote_store, identity_provider):
    context = _context(listing_store, vote_store, identity_provider)
    await context.load_catalog()

    assert context.select("Alpha").link == ALPHA
    assert context.selected_title == "Alpha"
    assert context.select("Nope") is None
    assert context.selected_title is None
    assert [listing.title for listing in context.search("bet")] == ["Beta"]


@pytest.mark.asyncio
async def test_signed_in_vote_counts_immediately(fakes, listing_store, vote_store, alice):
    context = _context(listing_store, vote_store, fakes.IdentityProvider(user=alice))
    await context.load_catalog()

    outcome = await context.cast_vote(ALPHA)

    assert outcome.count == 1
    assert outcome.receipt.inserted is True
    assert vote_store.votes == {("ubghub", ALPHA, "user-alice")}
    # Optimistic count kept; no re-fetch needed
    assert vote_store.fetch_calls == 1


@pytest.mark.asyncio
async def test_duplicate_vote_drift_reconciled_by_refresh(fakes, listing_store, alice):
    votes = fakes.VoteStore({("ubghub", ALPHA, "user-alice")})
    context = _context(listing_store, votes, fakes.IdentityProvider(user=alice))
    await context.load_catalog()

    outcome = await context.cast_vote(ALPHA)

    assert outcome.receipt.duplicate_ignored is True
    assert outcome.count == 2
    assert await context.refresh_vote_counts() == {ALPHA: 1}
    assert context.count_for(ALPHA) == 1


@pytest.mark.asyncio
async def test_cancelled_sign_in_rolls_back_increment(listing_store, vote_store, identity_provider):
    context = _context(listing_store, vote_store, identity_provider)
    await context.load_catalog()

    vote = asyncio.create_task(context.cast_vote(ALPHA))
    await context.gate.wait_until_interactive()
    assert context.count_for(ALPHA) == 1

    context.gate.cancel()

    with pytest.raises(AuthRequiredError):
        await vote
    assert context.count_for(ALPHA) == 0
    assert ALPHA not in context.vote_counts
    assert vote_store.insert_calls == 0


@pytest.mark.asyncio
async def test_failed_write_rolls_back_increment(fakes, listing_store, alice):
    votes = fakes.VoteStore({("ubghub", ALPHA, "u1"), ("ubghub", ALPHA, "u2")})
    votes.insert_error = OSError("write failed")
    context = _context(listing_store, votes, fakes.IdentityProvider(user=alice))
    await context.load_catalog()

    with pytest.raises(FetchError):
        await context.cast_vote(ALPHA)

    assert context.count_for(ALPHA) == 2


@pytest.mark.asyncio
async def test_interactive_sign_in_refetches_counts(listing_store, vote_store, identity_provider, alice):
    context = _context(listing_store, vote_store, identity_provider)
    await context.load_catalog()

    vote = asyncio.create_task(context.cast_vote(ALPHA))
    await context.gate.wait_until_interactive()
    context.gate.complete_sign_in(alice)
    outcome = await vote

    assert outcome.receipt.signed_in is True
    assert outcome.count == 1
    assert context.loaded is False
    assert vote_store.fetch_calls == 2


@pytest.mark.asyncio
async def test_refresh_during_vote_is_not_double_counted(fakes, listing_store, alice):
    votes = fakes.VoteStore({("ubghub", ALPHA, "user-bob")})
    provider = fakes.IdentityProvider()
    context = _context(listing_store, votes, provider)
    await context.load_catalog()

    vote = asyncio.create_task(context.cast_vote(ALPHA))
    await context.gate.wait_until_interactive()
    assert context.count_for(ALPHA) == 2

    # Someone else votes; a refresh replaces the optimistic base
    votes.votes.add(("ubghub", ALPHA, "user-carol"))
    await context.refresh_vote_counts()
    assert context.count_for(ALPHA) == 2

    context.gate.complete_sign_in(alice)
    outcome = await vote

    assert outcome.count == 3
    assert context.count_for(ALPHA) == 3


@pytest.mark.asyncio
async def test_rollback_after_refresh_keeps_fresh_counts(fakes, listing_store):
    votes = fakes.VoteStore({("ubghub", ALPHA, "user-bob")})
    context = _context(listing_store, votes, fakes.IdentityProvider())
    await context.load_catalog()

    vote = asyncio.create_task(context.cast_vote(ALPHA))
    await context.gate.wait_until_interactive()
    votes.votes.add(("ubghub", ALPHA, "user-carol"))
    await context.refresh_vote_counts()

    context.gate.cancel()
    with pytest.raises(AuthRequiredError):
        await vote

    assert context.count_for(ALPHA) == 2


@pytest.mark.asyncio
async def test_begin_vote_returns_outcome_when_signed_in(fakes, listing_store, vote_store, alice):
    context = _context(listing_store, vote_store, fakes.IdentityProvider(user=alice))
    await context.load_catalog()

    result = await context.begin_vote(ALPHA)

    assert isinstance(result, VoteOutcome)
    assert result.count == 1
    assert context.pending_votes == {}


@pytest.mark.asyncio
async def test_begin_vote_parks_until_sign_in(listing_store, vote_store, identity_provider, alice):
    context = _context(listing_store, vote_store, identity_provider)
    await context.load_catalog()

    result = await context.begin_vote(ALPHA)

    assert isinstance(result, PendingVote)
    assert result.sign_in_url == "https://auth.example/authorize"
    assert result.count == 1
    assert context.vote_results[ALPHA] == "pending_sign_in"

    # A second vote joins the same sign-in
    second = await context.begin_vote(BETA)
    assert isinstance(second, PendingVote)
    assert len(identity_provider.begin_calls) == 1

    tasks = list(context.pending_votes.values())
    context.gate.complete_sign_in(alice)
    await asyncio.gather(*tasks)
    await asyncio.sleep(0)

    assert context.pending_votes == {}
    assert context.vote_results == {ALPHA: "recorded", BETA: "recorded"}
    assert vote_store.votes == {("ubghub", ALPHA, "user-alice"), ("ubghub", BETA, "user-alice")}


@pytest.mark.asyncio
async def test_signed_in_vote_completes_parked_votes(fakes, listing_store, vote_store, alice):
    class TokenCheckingProvider(fakes.IdentityProvider):
        async def get_current_user(self):
            await asyncio.sleep(0)
            return self.user

    identity_provider = TokenCheckingProvider()
    context = _context(listing_store, vote_store, identity_provider)
    await context.load_catalog()

    await context.begin_vote(ALPHA)
    parked = context.pending_votes[ALPHA]

    identity_provider.user = alice
    result = await context.begin_vote(BETA)

    assert isinstance(result, VoteOutcome)
    await parked
    await asyncio.sleep(0)

    assert context.gate.state is GateState.AUTHENTICATED
    assert context.vote_results[ALPHA] == "recorded"
    assert vote_store.votes == {("ubghub", ALPHA, "user-alice"), ("ubghub", BETA, "user-alice")}


@pytest.mark.asyncio
async def test_repeat_begin_vote_while_parked_does_not_double_count(
    listing_store, vote_store, identity_provider
):
    context = _context(listing_store, vote_store, identity_provider)
    await context.load_catalog()

    await context.begin_vote(ALPHA)
    again = await context.begin_vote(ALPHA)

    assert isinstance(again, PendingVote)
    assert again.count == 1

    task = context.pending_votes[ALPHA]
    context.gate.cancel()
    with pytest.raises(AuthRequiredError):
        await task


@pytest.mark.asyncio
async def test_parked_vote_cancelled(listing_store, vote_store, identity_provider):
    context = _context(listing_store, vote_store, identity_provider)
    await context.load_catalog()

    await context.begin_vote(ALPHA)
    task = context.pending_votes[ALPHA]
    context.gate.cancel()
    with pytest.raises(AuthRequiredError):
        await task
    await asyncio.sleep(0)

    assert context.vote_results[ALPHA] == "sign_in_required"
    assert context.count_for(ALPHA) == 0


@pytest.mark.asyncio
async def test_begin_vote_surfaces_sign_in_start_failure(listing_store, vote_store, identity_provider):
    identity_provider.begin_error = RuntimeError("redis down")
    context = _context(listing_store, vote_store, identity_provider)
    await context.load_catalog()

    with pytest.raises(AuthRequiredError):
        await context.begin_vote(ALPHA)
    assert context.count_for(ALPHA) == 0


@pytest.mark.asyncio
async def test_sign_out_forgets_identity(fakes, listing_store, vote_store, alice):
    provider = fakes.IdentityProvider(user=alice)
    context = _context(listing_store, vote_store, provider)
    await context.load_catalog()
    await context.begin_vote(ALPHA)

    await context.sign_out()

    assert provider.sign_out_calls == 1
    assert context.gate.identity is None
