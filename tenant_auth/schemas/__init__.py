"""Public schema exports."""

from .auth import OAuthCallbackPayload
from .webhook import WebhookEvent, WebhookPayload

__all__ = [
    "OAuthCallbackPayload",
    "WebhookEvent",
    "WebhookPayload",
]
