"""
Token store capability and the in-process adapter.

The pipeline only talks to the :class:`TokenStore` protocol. Implementations
must complete or fail each call atomically per principal so readers never
observe a partially written token.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Protocol, runtime_checkable

from tenant_auth.core.errors import TokenNotFoundError
from tenant_auth.models.token import OAuthToken


@runtime_checkable
class TokenStore(Protocol):
    """Persist and retrieve the current token per principal."""

    async def create_session(self, principal: str, token: OAuthToken) -> None:
        ...

    async def update_session(self, principal: str, token: OAuthToken) -> None:
        ...

    async def get_session(self, principal: str) -> OAuthToken:
        ...


class InMemoryTokenStore:
    """Process-local store backed by a dict guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._sessions: Dict[str, OAuthToken] = {}
        self._lock = asyncio.Lock()

    async def create_session(self, principal: str, token: OAuthToken) -> None:
        async with self._lock:
            self._sessions[principal] = token

    async def update_session(self, principal: str, token: OAuthToken) -> None:
        async with self._lock:
            if principal not in self._sessions:
                raise TokenNotFoundError(f"No OAuth session stored for principal {principal}.")
            self._sessions[principal] = token

    async def get_session(self, principal: str) -> OAuthToken:
        async with self._lock:
            token = self._sessions.get(principal)
        if token is None:
            raise TokenNotFoundError(f"No OAuth session stored for principal {principal}.")
        return token

    async def delete_session(self, principal: str) -> None:
        async with self._lock:
            self._sessions.pop(principal, None)


__all__ = ["InMemoryTokenStore", "TokenStore"]
