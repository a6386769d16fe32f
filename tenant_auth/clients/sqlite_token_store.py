"""SQLite-backed token store with encrypted token secrets."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from tenant_auth.core.errors import PersistenceError, TokenNotFoundError
from tenant_auth.models.token import OAuthToken
from tenant_auth.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


class SQLiteTokenStore:
    """One row per principal; access and refresh tokens are Fernet-encrypted."""

    def __init__(self, db_path: str, cipher: TokenCipherService) -> None:
        self._db_path = Path(db_path)
        self._cipher = cipher
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_sessions (
                    principal TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def _encode(self, token: OAuthToken) -> str:
        record = token.to_record()
        record["access_token"] = self._cipher.encrypt(token.access_token)
        record["refresh_token"] = self._cipher.encrypt(token.refresh_token)
        return json.dumps(record)

    def _decode(self, data: str) -> OAuthToken:
        record: Dict[str, Any] = json.loads(data)
        record["access_token"] = self._cipher.decrypt(record["access_token"])
        record["refresh_token"] = self._cipher.decrypt(record["refresh_token"])
        return OAuthToken.from_record(record)

    def _upsert(self, principal: str, token: OAuthToken) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO oauth_sessions (principal, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(principal) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                (principal, self._encode(token), now, now),
            )

    def _update(self, principal: str, token: OAuthToken) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE oauth_sessions SET data = ?, updated_at = ? WHERE principal = ?",
                (self._encode(token), now, principal),
            )
            if cursor.rowcount == 0:
                raise TokenNotFoundError(f"No OAuth session stored for principal {principal}.")

    def _select(self, principal: str) -> OAuthToken:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM oauth_sessions WHERE principal = ?",
                (principal,),
            ).fetchone()
        if not row:
            raise TokenNotFoundError(f"No OAuth session stored for principal {principal}.")
        return self._decode(row["data"])

    async def create_session(self, principal: str, token: OAuthToken) -> None:
        try:
            await asyncio.to_thread(self._upsert, principal, token)
        except sqlite3.Error as exc:
            logger.error("Failed to create session for principal %s: %s", principal, exc)
            raise PersistenceError(f"Failed to store session: {exc}") from exc

    async def update_session(self, principal: str, token: OAuthToken) -> None:
        try:
            await asyncio.to_thread(self._update, principal, token)
        except sqlite3.Error as exc:
            logger.error("Failed to update session for principal %s: %s", principal, exc)
            raise PersistenceError(f"Failed to update session: {exc}", token=token) from exc

    async def get_session(self, principal: str) -> OAuthToken:
        try:
            return await asyncio.to_thread(self._select, principal)
        except (sqlite3.Error, ValueError) as exc:
            raise PersistenceError(f"Failed to read session: {exc}") from exc

    async def delete_session(self, principal: str) -> None:
        def _delete() -> None:
            with self._connect() as conn:
                conn.execute("DELETE FROM oauth_sessions WHERE principal = ?", (principal,))

        try:
            await asyncio.to_thread(_delete)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete session: {exc}") from exc


__all__ = ["SQLiteTokenStore"]
