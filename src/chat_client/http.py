"""
HTTP helpers shared by the REST and streaming clients.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from .exceptions import ProtocolError
from .models import ClientSettings


def build_http_client(settings: ClientSettings) -> httpx.AsyncClient:
    """Create the AsyncClient used when the caller does not supply one."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=settings.connect_timeout,
            read=settings.read_timeout,
            write=settings.write_timeout,
            pool=settings.pool_timeout,
        ),
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive,
        ),
    )


def bearer_headers(token: str | None) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token else {}


def error_detail(payload: Any) -> str | None:
    """Pull a human-readable message out of an error body."""
    if not isinstance(payload, dict):
        return None
    for key in ("detail", "error"):
        value = payload.get(key)
        if not value:
            continue
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            # FastAPI validation errors: [{"loc": [...], "msg": "..."}]
            return "; ".join(
                str(item.get("msg", item)) if isinstance(item, dict) else str(item)
                for item in value
            )
        return str(value)
    return None


def protocol_error_from_response(response: httpx.Response) -> ProtocolError:
    """
    Build a ProtocolError for a non-success response.

    The body must already be read. Server-supplied detail wins; otherwise
    the message falls back to the status line.
    """
    try:
        payload = json.loads(response.content) if response.content else {}
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = {}

    message = error_detail(payload) or (
        f"Error {response.status_code}: {response.reason_phrase}"
    )
    return ProtocolError(
        message,
        status_code=response.status_code,
        response_data=payload if isinstance(payload, dict) else {},
    )
