"""
Assemble ready-to-use API clients bound to a principal, a tenant and a store.
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from datetime import timedelta
from typing import Optional, Tuple

import httpx

from tenant_auth.clients.oauth import OAuthProvider
from tenant_auth.clients.transport import BearerTokenAuth, TenantScopedTransport
from tenant_auth.core.config import XERO_API_BASE_URL
from tenant_auth.models.token import OAuthToken, Session, parse_tenant_id
from tenant_auth.services.token_refresher import TokenRefresher
from tenant_auth.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class ClientAssembler:
    """Compose network transport, tenant scoping and bearer auth into one client.

    Refreshers are shared per (principal, store), so clients built for several
    tenants of the same principal coordinate a single refresh between them.
    At most ``max_refreshers`` are cached. Past that, the least recently used
    idle refreshers are dropped. Refreshers that are mid-refresh or hold an
    unpersisted token are kept until they settle.
    """

    def __init__(
        self,
        provider: OAuthProvider,
        *,
        base_url: str = XERO_API_BASE_URL,
        expiry_skew: timedelta = timedelta(seconds=10),
        refresh_timeout: Optional[float] = 30.0,
        refresh_wait_timeout: Optional[float] = None,
        request_timeout: float = 30.0,
        max_refreshers: int = 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._provider = provider
        self._base_url = base_url
        self._expiry_skew = expiry_skew
        self._refresh_timeout = refresh_timeout
        self._refresh_wait_timeout = refresh_wait_timeout
        self._request_timeout = request_timeout
        self._max_refreshers = max_refreshers
        self._transport = transport
        self._refreshers: "OrderedDict[Tuple[str, int], TokenRefresher]" = OrderedDict()

    async def build_client(
        self,
        principal: str,
        tenant_id: uuid.UUID | str,
        store: TokenStore,
        *,
        token: Optional[OAuthToken] = None,
    ) -> httpx.AsyncClient:
        """Build a client for ``principal`` scoped to ``tenant_id``.

        The principal's token is read from ``store`` unless ``token`` is given
        or a refresher for the principal already exists.
        """
        refresher = self._refreshers.get((principal, id(store)))
        if refresher is not None and refresher.store is store:
            token = refresher.current
        elif token is None:
            token = await store.get_session(principal)
        session = Session(
            token=token,
            principal=principal,
            tenant_id=parse_tenant_id(tenant_id),
            store=store,
        )
        return self.build_client_for_session(session)

    def build_client_for_session(self, session: Session) -> httpx.AsyncClient:
        refresher = self.refresher_for(session.principal, session.store, session.token)
        transport = TenantScopedTransport(session.tenant_id, self._transport)
        logger.debug(
            "Assembled client for principal %s and tenant %s",
            session.principal,
            session.tenant_id,
        )
        return httpx.AsyncClient(
            auth=BearerTokenAuth(refresher, timeout=self._refresh_wait_timeout),
            transport=transport,
            base_url=self._base_url,
            timeout=self._request_timeout,
            headers={"Accept": "application/json"},
        )

    def refresher_for(
        self, principal: str, store: TokenStore, token: OAuthToken
    ) -> TokenRefresher:
        """Return the shared refresher for ``principal``, creating it on first use."""
        key = (principal, id(store))
        refresher = self._refreshers.get(key)
        if refresher is not None and refresher.store is store:
            self._refreshers.move_to_end(key)
            return refresher

        refresher = TokenRefresher(
            self._provider,
            store,
            principal,
            token,
            expiry_skew=self._expiry_skew,
            step_timeout=self._refresh_timeout,
        )
        self._refreshers[key] = refresher
        self._evict_idle(keep=key)
        return refresher

    def forget(self, principal: str) -> None:
        """Retire and drop cached refreshers for ``principal``.

        Clients already built for the principal stop handing out the old
        token, and a refresh they started does not overwrite the new session.
        """
        for key in [key for key in self._refreshers if key[0] == principal]:
            self._refreshers.pop(key).retire()

    def _evict_idle(self, *, keep: Tuple[str, int]) -> None:
        excess = len(self._refreshers) - self._max_refreshers
        if excess <= 0:
            return
        idle = [
            key
            for key, refresher in self._refreshers.items()
            if key != keep and not refresher.busy
        ]
        for key in idle:
            if excess <= 0:
                break
            del self._refreshers[key]
            excess -= 1
            logger.debug("Evicted idle token refresher for principal %s", key[0])


__all__ = ["ClientAssembler"]
