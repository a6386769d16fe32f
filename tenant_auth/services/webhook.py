"""
Webhook signature verification.
"""

from __future__ import annotations

import base64
import hmac
from hashlib import sha256

from tenant_auth.core.errors import ConfigError, SignatureMismatch

SIGNATURE_HEADER = "x-xero-signature"


class WebhookVerifier:
    """Check the base64 HMAC-SHA256 signature sent alongside a webhook body."""

    def __init__(self, signing_key: str) -> None:
        if not signing_key:
            raise ConfigError("Webhook signing key must be provided.")
        self._key = signing_key.encode("utf-8")

    def sign(self, body: bytes) -> str:
        digest = hmac.new(self._key, body, sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def verify(self, body: bytes, signature: str | None) -> None:
        """Raise ``SignatureMismatch`` unless ``signature`` matches ``body``."""
        if not signature:
            raise SignatureMismatch("Missing webhook signature.")
        expected = self.sign(body)
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            raise SignatureMismatch("Webhook signature does not match payload.")


__all__ = ["SIGNATURE_HEADER", "WebhookVerifier"]
