from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from tenant_auth.clients.sqlite_token_store import SQLiteTokenStore
from tenant_auth.core.errors import PersistenceError, TokenNotFoundError
from tenant_auth.models.token import OAuthToken
from tenant_auth.services.token_cipher import TokenCipherService
from tenant_auth.services.token_store import InMemoryTokenStore, TokenStore


def _token(access: str) -> OAuthToken:
    return OAuthToken(
        access_token=access,
        token_type="Bearer",
        refresh_token=f"{access}-refresh",
        expires_at=datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path) -> TokenStore:
    if request.param == "memory":
        return InMemoryTokenStore()
    return SQLiteTokenStore(
        str(tmp_path / "nested" / "tokens.db"),
        cipher=TokenCipherService(secret="store-secret"),
    )


@pytest.mark.asyncio
async def test_create_then_get_returns_the_same_token(store: TokenStore) -> None:
    await store.create_session("user-1", _token("access-1"))

    assert await store.get_session("user-1") == _token("access-1")


@pytest.mark.asyncio
async def test_update_replaces_the_token(store: TokenStore) -> None:
    await store.create_session("user-1", _token("access-1"))
    await store.update_session("user-1", _token("access-2"))

    assert (await store.get_session("user-1")).access_token == "access-2"


@pytest.mark.asyncio
async def test_principals_are_isolated(store: TokenStore) -> None:
    await store.create_session("user-1", _token("access-1"))
    await store.create_session("user-2", _token("access-2"))

    assert (await store.get_session("user-1")).access_token == "access-1"
    assert (await store.get_session("user-2")).access_token == "access-2"


@pytest.mark.asyncio
async def test_unknown_principal_raises_not_found(store: TokenStore) -> None:
    with pytest.raises(TokenNotFoundError):
        await store.get_session("ghost")
    with pytest.raises(TokenNotFoundError):
        await store.update_session("ghost", _token("access-1"))


def test_stores_satisfy_protocol(store: TokenStore) -> None:
    assert isinstance(store, TokenStore)


@pytest.mark.asyncio
async def test_sqlite_store_encrypts_secrets_at_rest(tmp_path) -> None:
    db_path = tmp_path / "tokens.db"
    store = SQLiteTokenStore(str(db_path), cipher=TokenCipherService(secret="store-secret"))
    await store.create_session("user-1", _token("plain-access"))

    with sqlite3.connect(db_path) as conn:
        (data,) = conn.execute(
            "SELECT data FROM oauth_sessions WHERE principal = ?", ("user-1",)
        ).fetchone()

    assert "plain-access" not in data
    assert "plain-access-refresh" not in data
    assert "2030-01-01T12:00:00+00:00" in data


@pytest.mark.asyncio
async def test_sqlite_store_wraps_database_errors(tmp_path) -> None:
    db_path = tmp_path / "tokens.db"
    store = SQLiteTokenStore(str(db_path), cipher=TokenCipherService(secret="store-secret"))
    await store.create_session("user-1", _token("access-1"))

    with sqlite3.connect(db_path) as conn:
        conn.execute("DROP TABLE oauth_sessions")

    with pytest.raises(PersistenceError) as excinfo:
        await store.update_session("user-1", _token("access-2"))
    assert excinfo.value.token == _token("access-2")


@pytest.mark.asyncio
async def test_sqlite_store_with_wrong_key_cannot_read(tmp_path) -> None:
    db_path = str(tmp_path / "tokens.db")
    writer = SQLiteTokenStore(db_path, cipher=TokenCipherService(secret="key-a"))
    await writer.create_session("user-1", _token("access-1"))

    reader = SQLiteTokenStore(db_path, cipher=TokenCipherService(secret="key-b"))
    with pytest.raises(PersistenceError):
        await reader.get_session("user-1")
