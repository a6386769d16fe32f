"""HTTP helpers for calling the wrapped API through an assembled client."""

from __future__ import annotations

import json
from typing import Any, Optional

import httpx

from tenant_auth.core.errors import ApiError, TransportError


def decode_api_error(response: httpx.Response) -> ApiError:
    """Map an error response body onto ``ApiError``.

    Bodies that are not the expected JSON object yield a generic error that
    keeps the HTTP status.
    """
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        return ApiError(
            title="Unknown error",
            status=response.status_code,
            detail="Error decoding the API error response",
        )
    return ApiError(
        title=str(payload.get("Title") or payload.get("title") or "Unknown error"),
        status=int(payload.get("Status") or payload.get("status") or response.status_code),
        detail=str(payload.get("Detail") or payload.get("detail") or ""),
        instance=str(payload.get("Instance") or payload.get("instance") or ""),
    )


async def send_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    body: Optional[Any] = None,
) -> Any:
    """Issue a request and return the decoded JSON body (``None`` when empty).

    Network failures and successful responses whose body is not JSON raise
    ``TransportError``; non-2xx responses raise ``ApiError``. Authentication errors from the token pipeline propagate
    unchanged.
    """
    headers = {"Accept": "application/json"}
    content = None
    if body is not None:
        headers["Content-Type"] = "application/json"
        content = json.dumps(body).encode("utf-8")

    try:
        response = await client.request(method, url, headers=headers, content=content)
    except httpx.TransportError as exc:
        raise TransportError(f"{method} {url} failed: {exc}") from exc

    if not response.is_success:
        raise decode_api_error(response)
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise TransportError(
            f"{method} {url} returned a body that is not valid JSON."
        ) from exc


__all__ = ["decode_api_error", "send_json"]
