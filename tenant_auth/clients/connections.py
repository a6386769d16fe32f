"""Client for the connections endpoint listing authorised tenants."""

from __future__ import annotations

import logging
import uuid
from typing import List

import httpx
from pydantic import ValidationError

from tenant_auth.core.errors import TransportError
from tenant_auth.models.connection import Tenant
from tenant_auth.utils.http import send_json

logger = logging.getLogger(__name__)

CONNECTIONS_URL = "https://api.xero.com/connections"


class ConnectionsClient:
    """List and revoke tenant connections using an assembled client."""

    def __init__(self, client: httpx.AsyncClient, *, connections_url: str = CONNECTIONS_URL) -> None:
        self._client = client
        self._url = connections_url

    async def list_tenants(self) -> List[Tenant]:
        payload = await send_json(self._client, "GET", self._url)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TransportError("Connections response is not a list.")
        try:
            tenants = [Tenant.model_validate(item) for item in payload]
        except ValidationError as exc:
            raise TransportError(f"Malformed connection entry: {exc}") from exc
        logger.debug("Fetched %d tenant connections", len(tenants))
        return tenants

    async def delete_connection(self, connection_id: uuid.UUID | str) -> None:
        await send_json(self._client, "DELETE", f"{self._url}/{connection_id}")


__all__ = ["CONNECTIONS_URL", "ConnectionsClient"]
