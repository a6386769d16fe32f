"""
OAuth2 utilities.

These helpers build the consent redirect and perform the authorization-code
and refresh-token exchanges against the identity provider's token endpoint.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from datetime import datetime, timezone
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from fastapi import HTTPException, status

from tenant_auth.core.config import OAuthClientSettings
from tenant_auth.core.errors import AuthExchangeError, AuthRefreshError, ConfigError
from tenant_auth.models.token import OAuthToken

logger = logging.getLogger(__name__)


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Malformed OAuth state.",
            ) from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid OAuth state signature.",
            )
        return json.loads(serialized)


class OAuthProvider:
    """Build authorization URLs and exchange codes or refresh tokens for tokens."""

    def __init__(
        self,
        settings: OAuthClientSettings,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not settings.client_id or not settings.client_secret:
            raise ConfigError("OAuth client id and secret must be provided.")
        if not settings.scopes:
            raise ConfigError("At least one OAuth scope must be configured.")
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    def build_authorization_url(self, state: str) -> str:
        """Construct the consent URL the user is redirected to."""
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": str(self._settings.redirect_uri),
            "response_type": "code",
            "scope": " ".join(self._settings.scopes),
            "state": state,
        }
        return f"{self._settings.authorize_url}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> OAuthToken:
        """Exchange an authorization code for a token."""
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": str(self._settings.redirect_uri),
        }
        token = await self._request_token(payload, error_cls=AuthExchangeError)
        if not token.refresh_token:
            logger.warning("Token endpoint returned no refresh token; is offline_access granted?")
        return token

    async def refresh(self, token: OAuthToken) -> OAuthToken:
        """Exchange the refresh credential held by ``token`` for a new token."""
        if not token.refresh_token:
            raise AuthRefreshError("Token has no refresh credential.")
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": token.refresh_token,
        }
        return await self._request_token(
            payload,
            error_cls=AuthRefreshError,
            fallback_refresh_token=token.refresh_token,
        )

    async def _request_token(
        self,
        payload: Dict[str, str],
        *,
        error_cls: type[AuthExchangeError],
        fallback_refresh_token: str = "",
    ) -> OAuthToken:
        data = {
            **payload,
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
        }
        issued_at = datetime.now(timezone.utc)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._settings.token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise error_cls(f"Token endpoint request failed: {exc}") from exc

        if response.status_code != status.HTTP_200_OK:
            raise error_cls(response.text, status_code=response.status_code)

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise error_cls("Token endpoint returned a non-JSON body.") from exc
        if not isinstance(token_payload, dict) or not token_payload.get("access_token"):
            raise error_cls("Incomplete token payload returned from the identity provider.")

        try:
            return OAuthToken.from_token_response(
                token_payload,
                issued_at=issued_at,
                fallback_refresh_token=fallback_refresh_token,
            )
        except (TypeError, ValueError) as exc:
            raise error_cls(f"Malformed token payload: {exc}") from exc


__all__ = [
    "OAuthProvider",
    "OAuthStateEncoder",
]
