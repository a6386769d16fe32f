"""Service layer exports."""

from .client_assembler import ClientAssembler
from .token_cipher import TokenCipherService
from .token_refresher import TokenRefresher
from .token_store import InMemoryTokenStore, TokenStore
from .webhook import WebhookVerifier

__all__ = [
    "ClientAssembler",
    "InMemoryTokenStore",
    "TokenCipherService",
    "TokenRefresher",
    "TokenStore",
    "WebhookVerifier",
]
