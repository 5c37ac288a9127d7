"""CDP HTTP endpoints — turn a debugging port into a WebSocket address.

Chrome serves a few JSON endpoints next to the WebSocket debugger:

    GET /json/version   browser metadata incl. webSocketDebuggerUrl
    PUT /json/new       open a new page target, returns its webSocketDebuggerUrl

The requests are blocking urllib calls pushed onto a worker thread.
"""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from chrome_cdp import config
from chrome_cdp.errors import (
    BrowserNotRunning,
    CDPError,
    EndpointStatusError,
    MissingFieldError,
    SerializationError,
)

log = logging.getLogger(__name__)

WS_URL_FIELD = "webSocketDebuggerUrl"


def _http(url: str, method: str = "GET", timeout: float = config.HTTP_TIMEOUT) -> tuple[int, str]:
    """Perform a request and return (status, body). Never raises on HTTP status."""
    req = Request(url, method=method)
    try:
        with urlopen(req, timeout=timeout) as resp:
            return resp.status, resp.read().decode("utf-8", errors="replace")
    except HTTPError as e:
        body = e.read().decode("utf-8", errors="replace") if e.fp else ""
        return e.code, body
    except (URLError, OSError, http.client.HTTPException) as e:
        raise BrowserNotRunning(url, getattr(e, "reason", e)) from e


def _extract_ws_url(url: str, status: int, body: str) -> str:
    if not 200 <= status < 300:
        raise EndpointStatusError(url, status, body)
    try:
        data = json.loads(body)
    except ValueError as e:
        raise SerializationError(
            f"Failed to parse JSON response from {url}: {e}. Response body: {body}",
            body=body,
        ) from e
    ws_url = data.get(WS_URL_FIELD) if isinstance(data, dict) else None
    if not isinstance(ws_url, str):
        raise MissingFieldError(WS_URL_FIELD, body, url=url)
    return ws_url


async def resolve_endpoint(port: int, host: str = "127.0.0.1") -> str:
    """Ask the browser on *port* for its browser-level WebSocket address."""
    url = f"http://{host}:{port}/json/version"
    status, body = await asyncio.to_thread(_http, url)
    return _extract_ws_url(url, status, body)


async def retry_resolve(
    port: int,
    max_attempts: int = config.ENDPOINT_ATTEMPTS,
    delay: float = config.ENDPOINT_RETRY_DELAY,
    host: str = "127.0.0.1",
) -> str:
    """resolve_endpoint() with a fixed number of attempts.

    The browser prints its port slightly before the HTTP server answers,
    so the first attempt or two may fail. Raises the last error seen once
    all attempts are used up.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: CDPError | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await resolve_endpoint(port, host=host)
        except CDPError as e:
            last_error = e
            log.debug("Endpoint attempt %d/%d on port %d failed: %s", attempt, max_attempts, port, e)
            if attempt < max_attempts:
                await asyncio.sleep(delay)

    assert last_error is not None
    raise last_error


async def create_page(port: int, host: str = "127.0.0.1") -> str:
    """Open a new page target and return its WebSocket address."""
    url = f"http://{host}:{port}/json/new"
    status, body = await asyncio.to_thread(_http, url, "PUT")
    return _extract_ws_url(url, status, body)
