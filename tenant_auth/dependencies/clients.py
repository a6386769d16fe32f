"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from datetime import timedelta
from functools import lru_cache

from tenant_auth.clients import OAuthProvider, OAuthStateEncoder, SQLiteTokenStore
from tenant_auth.core.config import get_settings
from tenant_auth.services import (
    ClientAssembler,
    InMemoryTokenStore,
    TokenCipherService,
    TokenStore,
    WebhookVerifier,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the client secret."""
    settings = _settings()
    return OAuthStateEncoder(secret_key=settings.oauth.client_secret)


@lru_cache()
def get_oauth_provider() -> OAuthProvider:
    """Create a singleton OAuth provider."""
    settings = _settings()
    return OAuthProvider(settings.oauth, timeout=settings.token.http_timeout_seconds)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    storage = settings.storage
    secret = storage.token_encryption_secret or settings.oauth.client_secret
    return TokenCipherService(
        secret=secret,
        previous_secrets=storage.token_encryption_previous_secrets,
    )


@lru_cache()
def get_token_store() -> TokenStore:
    """Provide the configured token store."""
    settings = _settings()
    if settings.storage.token_store_backend == "sqlite":
        return SQLiteTokenStore(
            settings.storage.token_store_path,
            cipher=get_token_cipher_service(),
        )
    return InMemoryTokenStore()


@lru_cache()
def get_client_assembler() -> ClientAssembler:
    """Provide the process-wide client assembler."""
    settings = _settings()
    return ClientAssembler(
        get_oauth_provider(),
        base_url=settings.api_base_url,
        expiry_skew=timedelta(seconds=settings.token.expiry_skew_seconds),
        refresh_timeout=settings.token.refresh_timeout_seconds,
        refresh_wait_timeout=settings.token.refresh_wait_timeout_seconds,
        max_refreshers=settings.token.max_cached_refreshers,
    )


@lru_cache()
def get_webhook_verifier() -> WebhookVerifier:
    """Provide the webhook signature verifier."""
    settings = _settings()
    return WebhookVerifier(settings.webhook.webhook_signing_key or "")


__all__ = [
    "get_client_assembler",
    "get_oauth_provider",
    "get_oauth_state_encoder",
    "get_token_cipher_service",
    "get_token_store",
    "get_webhook_verifier",
]
