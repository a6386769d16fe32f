"""
Application configuration models and helpers.

Centralizes settings management so the token pipeline, the stores and the
FastAPI surface share a consistent configuration surface.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Optional

from pydantic import AnyHttpUrl, Field, HttpUrl, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from tenant_auth.core.errors import ConfigError

XERO_AUTHORIZE_URL = "https://login.xero.com/identity/connect/authorize"
XERO_TOKEN_URL = "https://identity.xero.com/connect/token"
XERO_API_BASE_URL = "https://api.xero.com"


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class OAuthClientSettings(BaseSettings):
    """Credential configuration for the identity provider. Immutable once loaded."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_", frozen=True, extra="ignore")

    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)
    redirect_uri: AnyHttpUrl
    scopes: Annotated[tuple[str, ...], NoDecode] = (
        "openid",
        "profile",
        "email",
        "offline_access",
        "accounting.transactions",
        "accounting.contacts",
    )
    authorize_url: str = XERO_AUTHORIZE_URL
    token_url: str = XERO_TOKEN_URL

    @field_validator("scopes", mode="before")
    @classmethod
    def split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, str):
            value = [scope.strip() for scope in value.split(",")]
        scopes = tuple(scope for scope in value if scope)
        if not scopes:
            raise ValueError("At least one OAuth scope is required.")
        return scopes


class TokenSettings(BaseSettings):
    """Timing knobs for the token lifecycle."""

    model_config = SettingsConfigDict(env_prefix="TOKEN_", extra="ignore")

    expiry_skew_seconds: float = Field(
        10.0,
        ge=0,
        description="Tokens expiring within this window are treated as expired.",
    )
    refresh_timeout_seconds: float = Field(
        30.0,
        gt=0,
        description="Upper bound for each step (exchange, store write) of a refresh.",
    )
    refresh_wait_timeout_seconds: float = Field(
        30.0,
        gt=0,
        description="How long one outbound request waits for a shared refresh.",
    )
    http_timeout_seconds: float = Field(10.0, gt=0)
    max_cached_refreshers: int = Field(1024, ge=1)


class StorageSettings(BaseSettings):
    """Token store selection."""

    model_config = SettingsConfigDict(extra="ignore")

    token_store_backend: Literal["memory", "sqlite"] = "memory"
    token_store_path: str = "data/tokens.db"
    token_encryption_secret: Optional[str] = Field(
        None,
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    token_encryption_previous_secrets: Annotated[tuple[str, ...], NoDecode] = Field(
        (),
        description="Comma-separated retired secrets still accepted for decryption.",
    )

    @field_validator("token_encryption_previous_secrets", mode="before")
    @classmethod
    def split_secrets(cls, value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
        if isinstance(value, str):
            value = value.split(",")
        return tuple(secret.strip() for secret in value if secret.strip())


class WebhookSettings(BaseSettings):
    """Webhook signing configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    webhook_signing_key: Optional[str] = None


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    environment: str = "development"
    log_level: str = "INFO"
    api_base_url: str = XERO_API_BASE_URL
    state_ttl_seconds: int = 900
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        description="Optional URL for redirecting users back to the front-end.",
    )
    oauth: OAuthClientSettings = Field(default_factory=OAuthClientSettings)
    token: TokenSettings = Field(default_factory=TokenSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)


def load_settings() -> AppSettings:
    """Build settings from the environment, surfacing problems as ``ConfigError``."""
    try:
        return AppSettings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return load_settings()


__all__ = [
    "AppSettings",
    "OAuthClientSettings",
    "StorageSettings",
    "TokenSettings",
    "WebhookSettings",
    "XERO_API_BASE_URL",
    "XERO_AUTHORIZE_URL",
    "XERO_TOKEN_URL",
    "get_settings",
    "load_settings",
]
