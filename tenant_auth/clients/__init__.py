"""Expose constructed client wrappers."""

from .connections import ConnectionsClient
from .oauth import OAuthProvider, OAuthStateEncoder
from .sqlite_token_store import SQLiteTokenStore
from .transport import BearerTokenAuth, TenantScopedTransport

__all__ = [
    "BearerTokenAuth",
    "ConnectionsClient",
    "OAuthProvider",
    "OAuthStateEncoder",
    "SQLiteTokenStore",
    "TenantScopedTransport",
]
