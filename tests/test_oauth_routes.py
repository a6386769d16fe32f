try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import copy
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from tenant_auth.clients.oauth import OAuthStateEncoder
from tenant_auth.core.errors import AuthExchangeError, AuthRefreshError
from tenant_auth.main import app
from tenant_auth.models.token import OAuthToken
from tenant_auth.services.client_assembler import ClientAssembler
from tenant_auth.services.token_store import InMemoryTokenStore


class DummyProvider:
    def __init__(self) -> None:
        self.states: list[str] = []
        self.codes: list[str] = []
        self.refreshes: list[str] = []
        self.refresh_error: Exception | None = None

    def build_authorization_url(self, state: str) -> str:
        self.states.append(state)
        return f"https://oauth.example.com/auth?state={state}"

    async def exchange_authorization_code(self, code: str) -> OAuthToken:
        self.codes.append(code)
        if code == "bad-code":
            raise AuthExchangeError("invalid_grant", status_code=400)
        return OAuthToken(
            access_token="access-token",
            refresh_token="refresh-token",
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=30),
        )

    async def refresh(self, token: OAuthToken) -> OAuthToken:
        self.refreshes.append(token.refresh_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        return OAuthToken(
            access_token=f"refreshed-{len(self.refreshes)}",
            refresh_token="refresh-token-2",
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=30),
        )


def _connections_handler(request: httpx.Request) -> httpx.Response:
    if request.headers.get("Authorization") != "Bearer access-token":
        return httpx.Response(401, json={"Title": "Unauthorized", "Status": 401})
    if request.method == "DELETE":
        return httpx.Response(204)
    return httpx.Response(
        200,
        json=[
            {
                "id": "e1eede29-f875-4a5d-8470-17f6a29a88b1",
                "tenantId": "70784a63-d24b-46a9-a4db-0e70a274b056",
                "tenantType": "ORGANISATION",
                "tenantName": "Demo Company",
                "createdDateUtc": "2024-05-01T10:00:00",
                "updatedDateUtc": "2024-05-02T10:00:00",
            }
        ],
    )


@pytest.fixture()
def oauth_overrides():
    from tenant_auth import dependencies
    from tenant_auth.core.config import get_settings

    provider = DummyProvider()
    store = InMemoryTokenStore()
    assembler = ClientAssembler(
        provider,
        base_url="https://api.example.com",
        transport=httpx.MockTransport(_connections_handler),
    )
    encoder = OAuthStateEncoder(secret_key="state-secret")
    base_settings = copy.deepcopy(get_settings())
    base_settings.frontend_base_url = None

    overrides = {
        dependencies.get_oauth_provider: lambda: provider,
        dependencies.get_oauth_state_encoder: lambda: encoder,
        dependencies.get_token_store: lambda: store,
        dependencies.get_client_assembler: lambda: assembler,
        dependencies.get_app_settings: lambda: base_settings,
    }

    app.dependency_overrides.update(overrides)

    yield provider, store, base_settings

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


@pytest.mark.anyio
async def test_authorize_returns_json_by_default(oauth_overrides):
    provider, _, _ = oauth_overrides
    async with _client() as client:
        response = await client.get("/api/auth/authorize", params={"principal": "abc123"})

    assert response.status_code == 200
    data = response.json()
    assert data["authorization_url"].startswith("https://")
    assert provider.states == [data["state"]]


@pytest.mark.anyio
async def test_authorize_redirects_for_html_accept(oauth_overrides):
    async with _client() as client:
        response = await client.get(
            "/api/auth/authorize",
            params={"principal": "abc123"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://oauth.example.com/auth")


@pytest.mark.anyio
async def test_callback_exchanges_code_and_creates_session(oauth_overrides):
    provider, store, _ = oauth_overrides

    async with _client() as client:
        await client.get("/api/auth/authorize", params={"principal": "user-1"})
        callback_resp = await client.get(
            "/api/auth/callback",
            params={"state": provider.states[-1], "code": "oauth-code"},
        )

    assert callback_resp.status_code == 200
    assert callback_resp.json()["status"] == "connected"
    assert provider.codes == ["oauth-code"]
    assert (await store.get_session("user-1")).access_token == "access-token"


@pytest.mark.anyio
async def test_callback_redirects_when_frontend_available(oauth_overrides):
    provider, _, settings = oauth_overrides
    settings.frontend_base_url = "https://app.example.com/oauth/success"

    async with _client() as client:
        await client.get("/api/auth/authorize", params={"principal": "user-2"})
        callback_resp = await client.get(
            "/api/auth/callback",
            params={"state": provider.states[-1], "code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert callback_resp.status_code == 307
    assert callback_resp.headers["location"] == "https://app.example.com/oauth/success"


@pytest.mark.anyio
async def test_callback_rejects_expired_state(oauth_overrides):
    _, store, _ = oauth_overrides
    stale_state = OAuthStateEncoder(secret_key="state-secret").encode(
        {
            "principal": "user-3",
            "issued_at": (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat(),
        }
    )

    async with _client() as client:
        response = await client.post(
            "/api/auth/callback", json={"state": stale_state, "code": "oauth-code"}
        )

    assert response.status_code == 400
    assert store._sessions == {}


@pytest.mark.anyio
async def test_callback_reports_failed_exchange(oauth_overrides):
    provider, _, _ = oauth_overrides

    async with _client() as client:
        await client.get("/api/auth/authorize", params={"principal": "user-4"})
        response = await client.post(
            "/api/auth/callback", json={"state": provider.states[-1], "code": "bad-code"}
        )

    assert response.status_code == 400


@pytest.mark.anyio
async def test_connections_lists_tenants_with_assembled_client(oauth_overrides):
    provider, _, _ = oauth_overrides

    async with _client() as client:
        await client.get("/api/auth/authorize", params={"principal": "user-5"})
        await client.get(
            "/api/auth/callback",
            params={"state": provider.states[-1], "code": "oauth-code"},
        )
        response = await client.get("/api/connections", params={"principal": "user-5"})

    assert response.status_code == 200
    (tenant,) = response.json()
    assert tenant["tenant_id"] == "70784a63-d24b-46a9-a4db-0e70a274b056"
    assert tenant["tenant_name"] == "Demo Company"


@pytest.mark.anyio
async def test_connections_for_unknown_principal_is_unauthorized(oauth_overrides):
    async with _client() as client:
        response = await client.get("/api/connections", params={"principal": "ghost"})

    assert response.status_code == 401


@pytest.mark.anyio
async def test_refresh_route_persists_new_token(oauth_overrides):
    provider, store, _ = oauth_overrides
    await store.create_session(
        "user-6", OAuthToken(access_token="old", refresh_token="refresh-token")
    )

    async with _client() as client:
        response = await client.post("/api/auth/refresh", params={"principal": "user-6"})

    assert response.status_code == 200
    assert response.json()["status"] == "refreshed"
    assert provider.refreshes == ["refresh-token"]
    assert (await store.get_session("user-6")).access_token == "refreshed-1"


@pytest.mark.anyio
async def test_refresh_route_maps_rejection_to_unauthorized(oauth_overrides):
    provider, store, _ = oauth_overrides
    provider.refresh_error = AuthRefreshError("invalid_grant", status_code=400)
    await store.create_session(
        "user-7", OAuthToken(access_token="old", refresh_token="refresh-token")
    )

    async with _client() as client:
        response = await client.post("/api/auth/refresh", params={"principal": "user-7"})

    assert response.status_code == 401
    assert (await store.get_session("user-7")).access_token == "old"


@pytest.mark.anyio
async def test_delete_connection_revokes_tenant(oauth_overrides):
    provider, _, _ = oauth_overrides

    async with _client() as client:
        await client.get("/api/auth/authorize", params={"principal": "user-8"})
        await client.get(
            "/api/auth/callback",
            params={"state": provider.states[-1], "code": "oauth-code"},
        )
        response = await client.delete(
            "/api/connections/e1eede29-f875-4a5d-8470-17f6a29a88b1",
            params={"principal": "user-8"},
        )

    assert response.status_code == 204


@pytest.mark.anyio
async def test_delete_connection_for_unknown_principal_is_unauthorized(oauth_overrides):
    async with _client() as client:
        response = await client.delete(
            "/api/connections/e1eede29-f875-4a5d-8470-17f6a29a88b1",
            params={"principal": "ghost"},
        )

    assert response.status_code == 401
