"""
Request guards for signed webhook deliveries.
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from tenant_auth.core.errors import SignatureMismatch
from tenant_auth.dependencies.clients import get_webhook_verifier
from tenant_auth.services.webhook import SIGNATURE_HEADER, WebhookVerifier

logger = logging.getLogger(__name__)


async def verify_webhook_signature(
    request: Request,
    verifier: Annotated[WebhookVerifier, Depends(get_webhook_verifier)],
) -> bytes:
    """Reject the request with 401 unless its body carries a valid signature.

    Returns the raw body; Starlette caches it so handlers can read it again.
    """
    body = await request.body()
    try:
        verifier.verify(body, request.headers.get(SIGNATURE_HEADER))
    except SignatureMismatch as exc:
        logger.warning("Rejected webhook delivery: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature.",
        ) from exc
    return body


WebhookBody = Annotated[bytes, Depends(verify_webhook_signature)]

__all__ = ["WebhookBody", "verify_webhook_signature"]
