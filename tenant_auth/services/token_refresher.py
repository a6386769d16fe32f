"""
Per-principal token provider that refreshes and persists transparently.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Optional

from tenant_auth.core.errors import (
    AuthExchangeError,
    AuthRefreshError,
    PersistenceError,
    SessionRetiredError,
)
from tenant_auth.models.token import OAuthToken

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from tenant_auth.clients.oauth import OAuthProvider
    from tenant_auth.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class TokenRefresher:
    """Hand out a token that is usable for the next outbound call.

    A held token that is still valid (allowing for ``expiry_skew``) is returned
    without any I/O. Otherwise one refresh runs at a time: the first caller to
    observe expiry starts it and every concurrent caller awaits the same
    result. A successful refresh is written to the store before the new token
    is handed out.

    When the exchange succeeds but the store write fails, ``PersistenceError``
    is raised and the new token is kept in memory as pending persistence,
    because the identity provider may already have rotated the refresh
    credential. The next call retries the store write, without a second
    exchange, before returning that token.

    A refresher is retired once its principal reconnects. From then on it
    hands out no token and a refresh still in flight skips its store write,
    so the reconnected session is never overwritten.
    """

    def __init__(
        self,
        provider: "OAuthProvider",
        store: "TokenStore",
        principal: str,
        token: OAuthToken,
        *,
        expiry_skew: timedelta = timedelta(seconds=10),
        step_timeout: Optional[float] = 30.0,
    ) -> None:
        self._provider = provider
        self._store = store
        self._principal = principal
        self._token = token
        self._skew = expiry_skew
        self._step_timeout = step_timeout
        self._pending_persistence = False
        self._inflight: Optional[asyncio.Task[OAuthToken]] = None
        self._retired = False

    @property
    def principal(self) -> str:
        return self._principal

    @property
    def store(self) -> "TokenStore":
        return self._store

    @property
    def current(self) -> OAuthToken:
        """The held token, which may be expired."""
        return self._token

    @property
    def pending_persistence(self) -> bool:
        return self._pending_persistence

    @property
    def retired(self) -> bool:
        return self._retired

    @property
    def busy(self) -> bool:
        """True while a refresh is running or a refreshed token awaits persistence."""
        return self._inflight is not None or self.pending_persistence

    def retire(self) -> None:
        """Stop serving tokens; the principal's session was replaced."""
        self._retired = True

    def _ensure_active(self) -> None:
        if self._retired:
            raise SessionRetiredError(
                f"Session for principal {self._principal} was replaced; rebuild the client."
            )

    async def token(self, timeout: Optional[float] = None) -> OAuthToken:
        """Return a valid token, refreshing it first when needed.

        ``timeout`` bounds how long this caller waits for a refresh. Giving up
        (or being cancelled) does not cancel the refresh other callers share.
        """
        self._ensure_active()
        if not self._pending_persistence and self._token.is_valid(self._skew):
            return self._token
        return await self._join_refresh(timeout)

    async def refresh(self, timeout: Optional[float] = None) -> OAuthToken:
        """Refresh regardless of the held token's expiry."""
        self._ensure_active()
        return await self._join_refresh(timeout)

    async def _join_refresh(self, timeout: Optional[float]) -> OAuthToken:
        task = self._inflight
        if task is None:
            task = asyncio.create_task(self._run_refresh())
            task.add_done_callback(self._on_refresh_done)
            self._inflight = task
        return await asyncio.wait_for(asyncio.shield(task), timeout)

    def _on_refresh_done(self, task: "asyncio.Task[OAuthToken]") -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled():
            # Retrieve the exception so an unawaited failure is not reported as lost.
            task.exception()

    async def _run_refresh(self) -> OAuthToken:
        if self._pending_persistence:
            token = self._token
            logger.info("Retrying persistence of refreshed token for principal %s", self._principal)
        else:
            token = await self._exchange()
        await self._persist(token)
        return token

    async def _exchange(self) -> OAuthToken:
        logger.info("Refreshing access token for principal %s", self._principal)
        try:
            token = await asyncio.wait_for(
                self._provider.refresh(self._token), self._step_timeout
            )
        except AuthRefreshError as exc:
            logger.warning("Token refresh failed for principal %s: %s", self._principal, exc)
            raise
        except AuthExchangeError as exc:
            logger.warning("Token refresh failed for principal %s: %s", self._principal, exc)
            raise AuthRefreshError(str(exc), status_code=exc.status_code) from exc
        except asyncio.TimeoutError as exc:
            logger.warning("Token refresh timed out for principal %s", self._principal)
            raise AuthRefreshError("Token refresh timed out.") from exc
        return token

    async def _persist(self, token: OAuthToken) -> None:
        if self._retired:
            logger.info(
                "Discarding refreshed token for principal %s; the session was replaced",
                self._principal,
            )
            raise SessionRetiredError(
                f"Session for principal {self._principal} was replaced during refresh."
            )
        try:
            await asyncio.wait_for(
                self._store.update_session(self._principal, token), self._step_timeout
            )
        except Exception as exc:
            self._token = token
            self._pending_persistence = True
            logger.error(
                "Refreshed token for principal %s could not be persisted: %s",
                self._principal,
                exc,
            )
            raise PersistenceError(
                f"Failed to persist refreshed token: {exc or type(exc).__name__}",
                token=token,
            ) from exc

        self._token = token
        self._pending_persistence = False
        logger.info(
            "Refreshed token persisted for principal %s (expires_at=%s)",
            self._principal,
            token.expires_at.isoformat() if token.expires_at else "never",
        )


__all__ = ["TokenRefresher"]
