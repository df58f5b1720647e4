"""WebSocket implementation of the ``open_transport`` capability."""

from __future__ import annotations

import os
from typing import Optional
from urllib.parse import quote

from websockets.asyncio.client import connect as websocket_connect

from tutor_live.backend.runtime.capabilities import OpenTransport, TransportConnection
from tutor_live.config.default import DEFAULT_API_KEY_ENV, DEFAULT_LIVE_HOST
from tutor_live.errors import ErrorCode, TransportConnectionError

LIVE_SERVICE_PATH = (
    "/ws/google.ai.generativelanguage.v1alpha.GenerativeService.BidiGenerateContent"
)


def build_live_url(host: str, api_key: str) -> str:
    return f"wss://{host}{LIVE_SERVICE_PATH}?key={quote(api_key, safe='')}"


def resolve_api_key(api_key: Optional[str]) -> str:
    key = (api_key or os.getenv(DEFAULT_API_KEY_ENV, "")).strip()
    if not key:
        raise TransportConnectionError(ErrorCode.API_KEY_MISSING)
    return key


def websocket_opener(
    host: str = DEFAULT_LIVE_HOST,
    api_key: Optional[str] = None,
    *,
    open_timeout: float = 10.0,
) -> OpenTransport:
    """Return a coroutine factory opening a fresh live WebSocket per call."""

    async def _open() -> TransportConnection:
        url = build_live_url(host, resolve_api_key(api_key))
        # Inbound turns may carry inline audio past the default 1 MiB frame limit.
        return await websocket_connect(url, max_size=None, open_timeout=open_timeout)

    return _open


__all__ = ["build_live_url", "resolve_api_key", "websocket_opener"]
