"""
Domain models for OAuth tokens and the sessions that carry them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from tenant_auth.services.token_store import TokenStore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthToken(BaseModel):
    """An access/refresh credential pair with an absolute expiry.

    Tokens are frozen: a refresh produces a new instance rather than editing
    the existing one.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str = ""
    expires_at: Optional[datetime] = Field(
        None,
        description="Absolute expiry in UTC. ``None`` means the token never expires.",
    )

    @field_validator("expires_at")
    @classmethod
    def ensure_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def from_token_response(
        cls,
        payload: Mapping[str, Any],
        *,
        issued_at: datetime | None = None,
        fallback_refresh_token: str = "",
    ) -> "OAuthToken":
        """Build a token from a token-endpoint JSON payload.

        ``expires_in`` is relative to ``issued_at``; a response without a
        ``refresh_token`` keeps ``fallback_refresh_token``.
        """
        issued_at = issued_at or _utcnow()
        expires_in = payload.get("expires_in")
        expires_at = None
        if expires_in not in (None, "", 0, "0"):
            expires_at = issued_at + timedelta(seconds=int(expires_in))
        return cls(
            access_token=payload["access_token"],
            token_type=payload.get("token_type") or "Bearer",
            refresh_token=payload.get("refresh_token") or fallback_refresh_token,
            expires_at=expires_at,
        )

    def is_valid(self, skew: timedelta = timedelta(0), *, now: datetime | None = None) -> bool:
        """Return True when the token is usable for at least ``skew`` longer."""
        if not self.access_token:
            return False
        if self.expires_at is None:
            return True
        now = now or _utcnow()
        return self.expires_at - skew > now

    @property
    def authorization_type(self) -> str:
        """Normalised scheme for the Authorization header."""
        if self.token_type.lower() == "bearer":
            return "Bearer"
        return self.token_type or "Bearer"

    def authorization_header(self) -> str:
        return f"{self.authorization_type} {self.access_token}"

    def to_record(self) -> Dict[str, Any]:
        """Serialize into the persisted record layout."""
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "OAuthToken":
        expires_at = record.get("expires_at")
        return cls(
            access_token=record["access_token"],
            token_type=record.get("token_type") or "Bearer",
            refresh_token=record.get("refresh_token") or "",
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )

    def __repr__(self) -> str:
        # Keep secrets out of logs and tracebacks.
        return (
            f"OAuthToken(token_type={self.token_type!r}, "
            f"expires_at={self.expires_at.isoformat() if self.expires_at else None})"
        )

    __str__ = __repr__


def parse_tenant_id(value: uuid.UUID | str) -> uuid.UUID:
    """Coerce a tenant identifier to a UUID, rejecting malformed input."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


@dataclass(frozen=True)
class Session:
    """The token, principal, tenant and store a pipeline is assembled from."""

    token: OAuthToken
    principal: str
    tenant_id: uuid.UUID
    store: "TokenStore"


__all__ = ["OAuthToken", "Session", "parse_tenant_id"]
