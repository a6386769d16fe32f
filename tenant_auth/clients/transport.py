"""
httpx building blocks for the request pipeline.

``TenantScopedTransport`` stamps the tenant header just before a request hits
the network transport; ``BearerTokenAuth`` resolves a valid token per request
and attaches it as the Authorization credential.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, AsyncGenerator, Generator, Optional

import httpx

from tenant_auth.models.token import parse_tenant_id

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from tenant_auth.services.token_refresher import TokenRefresher

TENANT_ID_HEADER = "xero-tenant-id"


class TenantScopedTransport(httpx.AsyncBaseTransport):
    """Forward requests to ``transport`` with the bound tenant header set.

    The tenant is fixed at construction. Method, URL, body and every other
    header pass through untouched.
    """

    header_name = TENANT_ID_HEADER

    def __init__(
        self,
        tenant_id: uuid.UUID | str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._tenant_id = parse_tenant_id(tenant_id)
        self._tenant_header_value = str(self._tenant_id)
        self._transport = transport or httpx.AsyncHTTPTransport()

    @property
    def tenant_id(self) -> uuid.UUID:
        return self._tenant_id

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        request.headers[self.header_name] = self._tenant_header_value
        return await self._transport.handle_async_request(request)

    async def aclose(self) -> None:
        await self._transport.aclose()


class BearerTokenAuth(httpx.Auth):
    """Attach ``Authorization: <type> <access token>`` from a token refresher."""

    def __init__(self, refresher: "TokenRefresher", *, timeout: Optional[float] = None) -> None:
        self._refresher = refresher
        self._timeout = timeout

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        raise RuntimeError("BearerTokenAuth requires an httpx.AsyncClient.")

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await self._refresher.token(timeout=self._timeout)
        request.headers["Authorization"] = token.authorization_header()
        yield request


__all__ = ["BearerTokenAuth", "TENANT_ID_HEADER", "TenantScopedTransport"]
