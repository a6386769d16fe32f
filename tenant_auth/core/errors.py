"""
Error taxonomy shared by the token pipeline, the stores and the HTTP surface.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from tenant_auth.models.token import OAuthToken


class TenantAuthError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(TenantAuthError):
    """Raised when credential or application configuration is missing or invalid."""


class AuthExchangeError(TenantAuthError):
    """Raised when the identity provider rejects or fails a token exchange."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthRefreshError(AuthExchangeError):
    """Raised when a refresh-token exchange fails."""


class PersistenceError(TenantAuthError):
    """Raised when the token store fails to durably record a token.

    ``token`` holds the freshly exchanged token when the failure happened after
    a successful refresh, so callers can inspect what was not persisted.
    """

    def __init__(self, message: str, *, token: "OAuthToken | None" = None) -> None:
        super().__init__(message)
        self.token = token


class TokenNotFoundError(TenantAuthError):
    """Raised when no persisted OAuth token is available for a principal."""


class SessionRetiredError(TenantAuthError):
    """Raised by a token refresher whose session was replaced by a reconnect."""


class TransportError(TenantAuthError):
    """Raised on network failures unrelated to authentication."""


class ApiError(TenantAuthError):
    """Decoded error payload returned by the remote API."""

    def __init__(
        self,
        *,
        title: str,
        status: int,
        detail: str = "",
        instance: str = "",
    ) -> None:
        super().__init__(f"{status} {title}: {detail}" if detail else f"{status} {title}")
        self.title = title
        self.status = status
        self.detail = detail
        self.instance = instance


class SignatureMismatch(TenantAuthError):
    """Raised when a webhook body does not match its HMAC signature."""


__all__ = [
    "ApiError",
    "AuthExchangeError",
    "AuthRefreshError",
    "ConfigError",
    "PersistenceError",
    "SessionRetiredError",
    "SignatureMismatch",
    "TenantAuthError",
    "TokenNotFoundError",
    "TransportError",
]
