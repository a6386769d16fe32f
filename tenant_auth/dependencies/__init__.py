"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_client_assembler,
    get_oauth_provider,
    get_oauth_state_encoder,
    get_token_cipher_service,
    get_token_store,
    get_webhook_verifier,
)
from .config import SettingsDependency, get_app_settings
from .security import WebhookBody, verify_webhook_signature

__all__ = [
    "SettingsDependency",
    "WebhookBody",
    "get_app_settings",
    "get_client_assembler",
    "get_oauth_provider",
    "get_oauth_state_encoder",
    "get_token_cipher_service",
    "get_token_store",
    "get_webhook_verifier",
    "verify_webhook_signature",
]
