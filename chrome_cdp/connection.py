"""CDP WebSocket connection — many concurrent commands over one socket.

One writer task drains a FIFO queue onto the socket; one reader task
routes every response back to the caller waiting on its id. Events
(messages without an id) are dropped.

    conn = await CDPConnection.connect(ws_url)
    version, targets = await asyncio.gather(
        conn.send("Browser.getVersion"),
        conn.send("Target.getTargets"),
    )
    await conn.close()

Everything here runs on a single event loop. The id counter and the
pending table are never read and written across an ``await``, so no
lock is needed around them.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed as WSConnectionClosed
from websockets.exceptions import InvalidHandshake, InvalidURI

from chrome_cdp.errors import (
    CommandError,
    CommandQueueClosed,
    ConnectionClosed,
    SerializationError,
    TransportError,
)

log = logging.getLogger(__name__)

# (id, method, params, completion slot)
_Submission = tuple[int, str, dict, asyncio.Future]


class CDPConnection:
    """Multiplexed CDP session over a single WebSocket.

    ``send()`` may be called from any number of tasks at once. Each call
    gets a unique id (1, 2, 3, ...) and exactly one outcome: the result
    dict, a CommandError, or a TransportError if the socket goes away.
    Commands go out in the order they were submitted; responses may
    come back in any order.
    """

    def __init__(self, ws: Any, url: str = "") -> None:
        self._ws = ws
        self.url = url
        self._ids = itertools.count(1)
        self._queue: asyncio.Queue[_Submission | None] = asyncio.Queue()
        self._pending: dict[int, tuple[str, asyncio.Future]] = {}
        self._closed = False
        self._close_reason = "connection closed"
        self._writer = asyncio.create_task(self._write_loop(), name="cdp-writer")
        self._reader = asyncio.create_task(self._read_loop(), name="cdp-reader")

    @classmethod
    async def connect(cls, ws_url: str) -> CDPConnection:
        """Open a WebSocket to *ws_url* and start the reader/writer tasks."""
        try:
            # CDP payloads (screenshots, large DOMs) easily exceed the 1 MiB default
            ws = await ws_connect(ws_url, max_size=None)
        except (OSError, InvalidURI, InvalidHandshake, asyncio.TimeoutError) as e:
            raise TransportError(f"Failed to connect to {ws_url}: {e}") from e
        log.debug("Connected to %s", ws_url)
        return cls(ws, ws_url)

    # ── Public API ──

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of commands sent and still waiting for a response."""
        return len(self._pending)

    async def send(self, method: str, params: dict | None = None, **kwargs: Any) -> dict:
        """Send a CDP command and wait for its result.

        Params can be given as a dict, as keyword arguments, or both.

        Raises:
            CommandError: the browser answered with an error object.
            CommandQueueClosed: the connection was already shut down.
            ConnectionClosed: the connection dropped before the response.
            SerializationError: *params* are not JSON-serializable.
        """
        if self._closed:
            raise CommandQueueClosed(
                f"Cannot send {method}: {self._close_reason} ({self.url or 'cdp'})"
            )
        payload = dict(params or {})
        payload.update(kwargs)

        msg_id = next(self._ids)
        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((msg_id, method, payload, fut))
        return await fut

    async def close(self) -> None:
        """Close the socket and stop both tasks. Safe to call repeatedly."""
        self._shutdown("connection closed by client")
        try:
            await self._ws.close()
        except Exception as e:  # noqa: BLE001
            log.debug("Error closing WebSocket: %s", e)
        await asyncio.gather(self._writer, self._reader, return_exceptions=True)

    async def __aenter__(self) -> CDPConnection:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"CDPConnection(url={self.url!r}, {state}, pending={len(self._pending)})"

    # ── Writer ──

    async def _write_loop(self) -> None:
        try:
            while True:
                item = await self._queue.get()
                if item is None:
                    break
                msg_id, method, params, fut = item
                if self._reader.done():
                    # Nobody left to route a response back
                    _resolve(fut, exc=ConnectionClosed(
                        f"{self._close_reason}; command {msg_id} ({method}) was never sent"
                    ))
                    continue
                try:
                    raw = json.dumps({"id": msg_id, "method": method, "params": params})
                except (TypeError, ValueError) as e:
                    _resolve(fut, exc=SerializationError(f"Cannot serialize params for {method}: {e}"))
                    continue

                # Register before sending: the response can arrive before send() returns
                self._pending[msg_id] = (method, fut)
                try:
                    await self._ws.send(raw)
                except WSConnectionClosed as e:
                    log.warning("CDP writer stopped while sending %s: %s", method, e)
                    self._pending.pop(msg_id, None)
                    _resolve(fut, exc=ConnectionClosed(f"Failed to send {method}: {e}"))
                    self._shutdown(f"connection lost: {e}")
                    break
                log.debug("-> %d %s", msg_id, method)
        finally:
            self._closed = True
            self._fail_queued()

    def _fail_queued(self) -> None:
        """Fail every submission the writer will never send."""
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            if item is not None:
                msg_id, method, _, fut = item
                _resolve(fut, exc=ConnectionClosed(
                    f"{self._close_reason}; command {msg_id} ({method}) was never sent"
                ))

    # ── Reader ──

    async def _read_loop(self) -> None:
        reason = "connection closed by browser"
        try:
            async for raw in self._ws:
                self._dispatch(raw)
        except WSConnectionClosed as e:
            reason = f"connection lost: {e}"
        except asyncio.CancelledError:
            reason = "reader cancelled"
            raise
        except Exception as e:  # noqa: BLE001
            log.warning("CDP reader stopped: %s", e)
            reason = f"reader failed: {e}"
        finally:
            self._shutdown(reason)
            self._fail_pending()

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            msg = json.loads(raw)
        except ValueError:
            log.warning("Dropping undecodable CDP message: %.200r", raw)
            return
        if not isinstance(msg, dict):
            return

        msg_id = msg.get("id")
        if not isinstance(msg_id, int) or isinstance(msg_id, bool):
            # Event notification; subscriptions are not supported
            log.debug("<- event %s", msg.get("method"))
            return

        entry = self._pending.pop(msg_id, None)
        if entry is None:
            return
        method, fut = entry

        error = msg.get("error")
        if error is not None:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            code = error.get("code", -1)
            message = error.get("message", "unknown")
            _resolve(fut, exc=CommandError(code, message, method=method, command_id=msg_id))
        else:
            _resolve(fut, result=msg.get("result", {}))

    def _fail_pending(self) -> None:
        """Resolve everything still awaiting a response with ConnectionClosed."""
        pending, self._pending = self._pending, {}
        for msg_id, (method, fut) in pending.items():
            _resolve(fut, exc=ConnectionClosed(
                f"{self._close_reason} before response to command {msg_id} ({method})"
            ))

    def _shutdown(self, reason: str) -> None:
        """Stop accepting commands and let the writer drain out."""
        if self._closed:
            return
        self._closed = True
        self._close_reason = reason
        self._queue.put_nowait(None)


def _resolve(fut: asyncio.Future, result: Any = None, exc: BaseException | None = None) -> None:
    # A caller that gave up leaves a cancelled future behind
    if fut.done():
        return
    if exc is not None:
        fut.set_exception(exc)
    else:
        fut.set_result(result)
