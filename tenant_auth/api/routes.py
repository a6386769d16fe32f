"""
FastAPI routes for connecting principals and calling the API on their behalf.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from tenant_auth.clients.connections import ConnectionsClient
from tenant_auth.core.errors import (
    ApiError,
    AuthExchangeError,
    AuthRefreshError,
    PersistenceError,
    SessionRetiredError,
    TokenNotFoundError,
    TransportError,
)
from tenant_auth.dependencies import (
    WebhookBody,
    get_app_settings,
    get_client_assembler,
    get_oauth_provider,
    get_oauth_state_encoder,
    get_token_store,
)
from tenant_auth.schemas import OAuthCallbackPayload, WebhookPayload

router = APIRouter()
logger = logging.getLogger(__name__)

# The connections endpoint is not tenant specific.
_NIL_TENANT = uuid.UUID(int=0)


def _raise_pipeline_error(exc: Exception) -> NoReturn:
    """Translate token pipeline failures into HTTP errors."""
    if isinstance(exc, TokenNotFoundError):
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED, detail="Account not connected."
        ) from exc
    if isinstance(exc, AuthRefreshError):
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Token refresh was rejected; re-authentication required.",
        ) from exc
    if isinstance(exc, PersistenceError):
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Refreshed token could not be stored.",
        ) from exc
    if isinstance(exc, ApiError):
        raise HTTPException(status_code=exc.status, detail=exc.detail or exc.title) from exc
    if isinstance(exc, TransportError):
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY, detail="Upstream API unreachable."
        ) from exc
    if isinstance(exc, SessionRetiredError):
        raise HTTPException(
            status_code=HTTPStatus.CONFLICT,
            detail="Account was reconnected during the request; retry it.",
        ) from exc
    if isinstance(exc, asyncio.TimeoutError):
        raise HTTPException(
            status_code=HTTPStatus.GATEWAY_TIMEOUT,
            detail="Timed out waiting for a token refresh.",
        ) from exc
    raise exc


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/authorize", status_code=HTTPStatus.OK)
async def start_oauth_flow(
    request: Request,
    provider: Annotated[Any, Depends(get_oauth_provider)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    principal: str = Query(..., description="Principal initiating authentication."),
    redirect_to: str | None = Query(
        default=None,
        description="Optional URL to redirect back to on successful authentication.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating a state token and authorization URL.
    """
    state_payload = {
        "nonce": uuid.uuid4().hex,
        "redirect_to": redirect_to,
        "principal": principal,
        "issued_at": datetime.now(timezone.utc).isoformat(),
    }
    state = state_encoder.encode(state_payload)
    authorization_url = provider.build_authorization_url(state=state)

    wants_html = "text/html" in request.headers.get("accept", "").lower()
    if redirect or wants_html:
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return {"authorization_url": authorization_url, "state": state}


@router.post("/auth/callback", status_code=HTTPStatus.OK)
async def handle_oauth_callback(
    payload: OAuthCallbackPayload,
    provider: Annotated[Any, Depends(get_oauth_provider)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    store: Annotated[Any, Depends(get_token_store)],
    assembler: Annotated[Any, Depends(get_client_assembler)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> dict:
    """Complete the OAuth exchange and store the principal's session."""
    state_data = state_encoder.decode(payload.state)

    try:
        issued_at = datetime.fromisoformat(state_data["issued_at"])
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing or invalid issued_at in state token.",
        ) from exc
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)

    now = datetime.now(timezone.utc)
    if now - issued_at > timedelta(seconds=settings.state_ttl_seconds):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="OAuth state token has expired."
        )

    principal = state_data.get("principal")
    if not principal:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing principal in state token.",
        )

    try:
        token = await provider.exchange_authorization_code(payload.code)
    except AuthExchangeError as exc:
        logger.warning("Authorization code exchange failed for %s: %s", principal, exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    try:
        await store.create_session(principal, token)
    except PersistenceError as exc:
        _raise_pipeline_error(exc)
    # A reconnect supersedes whatever token a cached refresher still holds.
    assembler.forget(principal)
    logger.info("Stored OAuth session for principal %s", principal)

    return {
        "status": "connected",
        "principal": principal,
        "redirect_to": state_data.get("redirect_to"),
    }


@router.get("/auth/callback", status_code=HTTPStatus.OK)
async def handle_oauth_callback_get(
    request: Request,
    provider: Annotated[Any, Depends(get_oauth_provider)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    store: Annotated[Any, Depends(get_token_store)],
    assembler: Annotated[Any, Depends(get_client_assembler)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: str = Query(..., description="OAuth state token."),
    code: str = Query(..., description="Authorization code returned by the identity provider."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    result = await handle_oauth_callback(
        payload=OAuthCallbackPayload(state=state, code=code),
        provider=provider,
        state_encoder=state_encoder,
        store=store,
        assembler=assembler,
        settings=settings,
    )

    wants_html = "text/html" in request.headers.get("accept", "").lower()
    redirect_target = result.get("redirect_to") or settings.frontend_base_url
    if redirect_target and (redirect or wants_html):
        return RedirectResponse(url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return JSONResponse(content=result)


@router.post("/auth/refresh", status_code=HTTPStatus.OK)
async def refresh_session(
    store: Annotated[Any, Depends(get_token_store)],
    assembler: Annotated[Any, Depends(get_client_assembler)],
    principal: str = Query(..., description="Principal whose token should be refreshed."),
) -> dict:
    """Force a refresh of the principal's token and persist the result."""
    try:
        token = await store.get_session(principal)
        refresher = assembler.refresher_for(principal, store, token)
        refreshed = await refresher.refresh()
    except (
        TokenNotFoundError,
        AuthRefreshError,
        PersistenceError,
        SessionRetiredError,
        asyncio.TimeoutError,
    ) as exc:
        _raise_pipeline_error(exc)

    return {
        "status": "refreshed",
        "principal": principal,
        "expires_at": refreshed.expires_at.isoformat() if refreshed.expires_at else None,
    }


@router.get("/connections", status_code=HTTPStatus.OK)
async def list_connections(
    store: Annotated[Any, Depends(get_token_store)],
    assembler: Annotated[Any, Depends(get_client_assembler)],
    principal: str = Query(..., description="Principal whose tenants should be listed."),
) -> list[dict]:
    """List the tenants the principal has authorised."""
    try:
        client = await assembler.build_client(principal, _NIL_TENANT, store)
        async with client:
            tenants = await ConnectionsClient(client).list_tenants()
    except (
        TokenNotFoundError,
        AuthRefreshError,
        PersistenceError,
        SessionRetiredError,
        asyncio.TimeoutError,
        ApiError,
        TransportError,
    ) as exc:
        _raise_pipeline_error(exc)

    return [tenant.model_dump(mode="json") for tenant in tenants]


@router.delete("/connections/{connection_id}", status_code=HTTPStatus.NO_CONTENT)
async def delete_connection(
    connection_id: uuid.UUID,
    store: Annotated[Any, Depends(get_token_store)],
    assembler: Annotated[Any, Depends(get_client_assembler)],
    principal: str = Query(..., description="Principal owning the connection."),
) -> Response:
    """Revoke one tenant connection."""
    try:
        client = await assembler.build_client(principal, _NIL_TENANT, store)
        async with client:
            await ConnectionsClient(client).delete_connection(connection_id)
    except (
        TokenNotFoundError,
        AuthRefreshError,
        PersistenceError,
        SessionRetiredError,
        asyncio.TimeoutError,
        ApiError,
        TransportError,
    ) as exc:
        _raise_pipeline_error(exc)

    return Response(status_code=HTTPStatus.NO_CONTENT)


@router.post("/webhooks", status_code=HTTPStatus.OK)
async def receive_webhook(body: WebhookBody) -> dict:
    """Accept a signed webhook delivery."""
    try:
        payload = WebhookPayload.model_validate(json.loads(body or b"{}"))
    except (ValueError, ValidationError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Malformed webhook payload."
        ) from exc

    for event in payload.events:
        logger.info(
            "Webhook event %s.%s for tenant %s resource %s",
            event.event_category,
            event.event_type,
            event.tenant_id,
            event.resource_id,
        )
    return {"status": "accepted", "events": len(payload.events)}
