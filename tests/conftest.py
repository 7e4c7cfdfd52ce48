import os
from datetime import datetime
from types import SimpleNamespace

# Settings are read at import time; give the required ones harmless values
os.environ.setdefault("SUPABASE_URL", "https://example-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_DB_URL", "postgresql://localhost:5432/ubghub_test")

import pytest  # noqa: E402

from app.features.directory.domain.models import Identity  # noqa: E402


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail_writes = False

    async def set_with_ttl(self, key: str, value: str, ttl_s: int) -> bool:
        if self.fail_writes:
            return False
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def getdel(self, key: str) -> str | None:
        return self.store.pop(key, None)


class FakeListingStore:
    def __init__(self, rows: list[dict] | None = None, error: Exception | None = None):
        self.rows = rows or []
        self.error = error
        self.calls = 0

    async def fetch_sites(self) -> list[dict]:
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.rows)


class FakeVoteStore:
    """Vote table keyed by (site, identifier, user_id)."""

    def __init__(self, votes: set[tuple[str, str, str]] | None = None):
        self.votes: set[tuple[str, str, str]] = set(votes or ())
        self.fetch_error: Exception | None = None
        self.insert_error: Exception | None = None
        self.fetch_calls = 0
        self.insert_calls = 0

    async def fetch_identifiers(self, site: str) -> list[str]:
        self.fetch_calls += 1
        if self.fetch_error:
            raise self.fetch_error
        return [identifier for s, identifier, _ in sorted(self.votes) if s == site]

    async def insert_or_ignore(self, site: str, identifier: str, user_id: str) -> bool:
        self.insert_calls += 1
        if self.insert_error:
            raise self.insert_error
        key = (site, identifier, user_id)
        if key in self.votes:
            return False
        self.votes.add(key)
        return True


class FakeIdentityProvider:
    def __init__(self, user: Identity | None = None, sign_in_url: str = "https://auth.example/authorize"):
        self.user = user
        self.sign_in_url = sign_in_url
        self.begin_error: Exception | None = None
        self.begin_calls: list[tuple[str, str | None]] = []
        self.sign_out_calls = 0
        self.access_token: str | None = None

    def use_access_token(self, token: str | None) -> None:
        if token:
            self.access_token = token

    async def get_current_user(self) -> Identity | None:
        return self.user

    async def begin_interactive_sign_in(self, provider: str, redirect_target: str | None) -> str:
        self.begin_calls.append((provider, redirect_target))
        if self.begin_error:
            raise self.begin_error
        return self.sign_in_url

    def use_session(self, session) -> Identity:
        self.user = Identity(user_id=session.user_id, email=session.email)
        return self.user

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        self.user = None


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def site_rows() -> list[dict]:
    """A older, B newer, C unverified."""
    return [
        {
            "timestamp": datetime(2024, 1, 1, 12, 0, 0),
            "title": "Alpha",
            "link": "https://alpha.example",
            "short_description": "First",
            "preview_images": "https://img.example/a1.png||https://img.example/a2.png",
            "verified": True,
        },
        {
            "timestamp": datetime(2024, 3, 1, 12, 0, 0),
            "title": "Beta",
            "link": "https://beta.example",
            "short_description": "Second",
            "verified": True,
        },
        {
            "timestamp": datetime(2024, 5, 1, 12, 0, 0),
            "title": "Gamma",
            "link": "https://gamma.example",
            "verified": False,
        },
    ]


@pytest.fixture
def listing_store(site_rows):
    return FakeListingStore(site_rows)


@pytest.fixture
def vote_store():
    return FakeVoteStore()


@pytest.fixture
def alice():
    return Identity(user_id="user-alice", email="alice@example.com")


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def fakes():
    """The fake classes, for tests that need more than one instance."""
    return SimpleNamespace(
        Redis=FakeRedis,
        ListingStore=FakeListingStore,
        VoteStore=FakeVoteStore,
        IdentityProvider=FakeIdentityProvider,
    )
