import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.auth.session import get_session_registry
from app.config import settings
from app.db.helpers import DatabaseError
from app.features.directory.api.router import LOAD_FAILED_DETAIL
from app.features.directory.api.router import router as directory_router
from app.features.directory.services.context import DirectoryContext
from app.routes import auth, sitemap
from app.services.session_registry import BrowserSession, SessionRegistry
from app.services.supabase_auth_service import AuthSession, SupabaseAuthError

ALPHA = "https://alpha.example"
BETA = "https://beta.example"


class StubAuthService:
    """Stands in for Supabase: known states map to browser sessions."""

    def __init__(self):
        self.states: dict[str, dict] = {}
        self.exchange_error: SupabaseAuthError | None = None

    async def resolve_state(self, state: str) -> dict:
        payload = self.states.pop(state, None)
        if payload is None:
            raise SupabaseAuthError("Sign-in state expired or unknown", "invalid_state")
        return payload

    async def exchange_code(self, code: str, code_verifier: str) -> AuthSession:
        if self.exchange_error:
            raise self.exchange_error
        return AuthSession(
            {
                "access_token": f"access-{code}",
                "refresh_token": "refresh",
                "user": {"id": "user-alice", "email": "alice@example.com"},
            }
        )


def _create_app(registry: SessionRegistry) -> FastAPI:
    app = FastAPI()
    app.dependency_overrides[get_session_registry] = lambda: registry
    app.include_router(directory_router)
    app.include_router(auth.router)
    app.include_router(sitemap.router)
    return app


@pytest.fixture
def registry(fakes, listing_store, vote_store):
    def factory(session_id: str) -> BrowserSession:
        provider = fakes.IdentityProvider()
        context = DirectoryContext(
            listing_store,
            vote_store,
            provider,
            collection="ubghub",
            redirect_target="https://ubghub.org",
            sign_in_timeout=5.0,
        )
        return BrowserSession(session_id=session_id, identity_provider=provider, context=context)

    return SessionRegistry(factory, ttl_seconds=3600)


@pytest.fixture
def auth_service(monkeypatch):
    stub = StubAuthService()
    monkeypatch.setattr(auth, "supabase_auth_service", stub)
    return stub


@pytest.fixture
def client(registry):
    with TestClient(_create_app(registry)) as test_client:
        yield test_client


def _session(client: TestClient, registry: SessionRegistry) -> BrowserSession:
    return registry.get(client.cookies.get(settings.SESSION_COOKIE_NAME))


def _wait_for_result(client: TestClient, identifier: str, timeout: float = 2.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get("/votes/pending").json()
        if body["results"].get(identifier) != "pending_sign_in" or time.monotonic() > deadline:
            return body
        time.sleep(0.01)


def test_list_sites_sets_session_cookie(client):
    response = client.get("/sites")

    assert response.status_code == 200
    body = response.json()
    assert [site["title"] for site in body["sites"]] == ["Beta", "Alpha"]
    assert body["total"] == 2
    assert all(site["upvotes"] == 0 for site in body["sites"])
    assert settings.SESSION_COOKIE_NAME in client.cookies


def test_search_sites(client):
    body = client.get("/sites", params={"q": "alp"}).json()

    assert [site["title"] for site in body["sites"]] == ["Alpha"]
    assert body["query"] == "alp"


def test_site_detail_includes_metadata(client):
    response = client.get("/sites/Alpha")

    assert response.status_code == 200
    body = response.json()
    assert body["site"]["link"] == ALPHA
    assert body["meta"]["canonical_url"] == "https://ubghub.org/?site=Alpha"


def test_unknown_site_is_404(client):
    assert client.get("/sites/Nope").status_code == 404


def test_load_failure_is_503(client, listing_store):
    listing_store.error = OSError("connection refused")

    response = client.get("/sites")

    assert response.status_code == 503
    assert response.json()["detail"] == LOAD_FAILED_DETAIL


def test_vote_counts_endpoint(client, vote_store):
    vote_store.votes.update({("ubghub", ALPHA, "u1"), ("ubghub", ALPHA, "u2")})

    body = client.get("/votes/ubghub").json()

    assert body == {"collection": "ubghub", "counts": {ALPHA: 2}}


def test_vote_for_unknown_listing_is_404(client):
    response = client.post("/votes", json={"identifier": "https://nope.example"})
    assert response.status_code == 404


def test_signed_in_vote_and_repeat(client, registry, alice, vote_store):
    client.get("/sites")
    _session(client, registry).identity_provider.user = alice

    first = client.post("/votes", json={"identifier": ALPHA})
    second = client.post("/votes", json={"identifier": ALPHA})

    assert first.status_code == 200
    assert first.json()["status"] == "recorded"
    assert first.json()["upvotes"] == 1
    assert second.status_code == 200
    assert second.json()["status"] == "duplicate"
    assert vote_store.votes == {("ubghub", ALPHA, "user-alice")}


def test_anonymous_vote_completes_after_callback(client, registry, auth_service, vote_store):
    client.get("/sites")

    response = client.post("/votes", json={"identifier": ALPHA})

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending_sign_in"
    assert body["sign_in_url"] == "https://auth.example/authorize"
    assert body["upvotes"] == 1

    pending = client.get("/votes/pending").json()
    assert pending["state"] == "awaiting_interactive"
    assert pending["pending"] == [ALPHA]

    session = _session(client, registry)
    auth_service.states["state-1"] = {
        "session_id": session.session_id,
        "code_verifier": "verifier",
        "redirect_target": "https://ubghub.org",
    }

    callback = client.get(
        "/auth/callback", params={"code": "c1", "state": "state-1"}, follow_redirects=False
    )

    assert callback.status_code == 302
    assert callback.headers["location"] == "https://ubghub.org?sign_in=ok"

    result = _wait_for_result(client, ALPHA)
    assert result["results"][ALPHA] == "recorded"
    assert result["state"] == "authenticated"
    assert vote_store.votes == {("ubghub", ALPHA, "user-alice")}


def test_cancel_fails_parked_vote(client, vote_store):
    client.get("/sites")
    assert client.post("/votes", json={"identifier": ALPHA}).status_code == 202

    cancel = client.post("/auth/cancel", json={"reason": "closed the window"})

    assert cancel.status_code == 200
    assert cancel.json()["cancelled"] is True
    result = _wait_for_result(client, ALPHA)
    assert result["results"][ALPHA] == "sign_in_required"
    assert vote_store.votes == set()

    counts = client.get("/sites").json()["sites"]
    assert all(site["upvotes"] == 0 for site in counts)


def test_callback_with_unknown_state_redirects_failed(client, auth_service):
    response = client.get(
        "/auth/callback", params={"code": "c1", "state": "nope"}, follow_redirects=False
    )

    assert response.status_code == 302
    assert response.headers["location"].endswith("sign_in=failed")


def test_callback_provider_denied_cancels_vote(client, registry, auth_service):
    client.get("/sites")
    client.post("/votes", json={"identifier": ALPHA})
    session = _session(client, registry)
    auth_service.states["state-2"] = {
        "session_id": session.session_id,
        "code_verifier": "verifier",
        "redirect_target": "https://ubghub.org/?site=Alpha",
    }

    response = client.get(
        "/auth/callback",
        params={"state": "state-2", "error": "access_denied"},
        follow_redirects=False,
    )

    assert response.headers["location"] == "https://ubghub.org/?site=Alpha&sign_in=cancelled"
    assert _wait_for_result(client, ALPHA)["results"][ALPHA] == "sign_in_required"


def test_callback_exchange_failure_fails_vote(client, registry, auth_service):
    client.get("/sites")
    client.post("/votes", json={"identifier": ALPHA})
    auth_service.exchange_error = SupabaseAuthError("invalid flow state", "flow_state_not_found")
    auth_service.states["state-3"] = {
        "session_id": _session(client, registry).session_id,
        "code_verifier": "verifier",
        "redirect_target": "https://ubghub.org",
    }

    response = client.get(
        "/auth/callback", params={"code": "c1", "state": "state-3"}, follow_redirects=False
    )

    assert response.headers["location"] == "https://ubghub.org?sign_in=failed"
    assert _wait_for_result(client, ALPHA)["results"][ALPHA] == "sign_in_required"


def test_sign_out(client, registry, alice):
    client.get("/sites")
    session = _session(client, registry)
    session.identity_provider.user = alice
    client.get("/auth/status")

    response = client.post("/auth/sign-out")

    assert response.status_code == 200
    assert response.json()["state"] == "unauthenticated"
    assert session.identity_provider.sign_out_calls == 1


def test_sitemap_route(client, monkeypatch):
    async def fake_fetch():
        return [{"title": "Alpha", "verified": True, "timestamp": None}]

    monkeypatch.setattr(sitemap.listing_repository, "fetch_verified_sites", fake_fetch)

    response = client.get("/sitemap.xml")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert "https://ubghub.org/?site=Alpha" in response.text


def test_sitemap_route_database_down(client, monkeypatch):
    async def failing_fetch():
        raise DatabaseError("Query failed", operation="fetch_all")

    monkeypatch.setattr(sitemap.listing_repository, "fetch_verified_sites", failing_fetch)

    assert client.get("/sitemap.xml").status_code == 503
