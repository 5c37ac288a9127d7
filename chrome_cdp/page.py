"""Page automation on top of a CDPConnection.

Every method is one or more CDP commands on the page's own connection:

    page = await session.new_page()
    await page.goto("https://example.com")
    if await page.wait_for_element("h1", timeout=5):
        title = await page.evaluate("document.title")
    await page.close()
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from chrome_cdp import config
from chrome_cdp.connection import CDPConnection
from chrome_cdp.errors import CDPError, ConnectionClosed, ProtocolError, ScriptError
from chrome_cdp.js_expressions import OUTER_HTML_JS, selector_exists_js, truthy_js

log = logging.getLogger(__name__)


class Page:
    """A single page target (tab) driven over its own connection."""

    def __init__(self, connection: CDPConnection) -> None:
        self.connection = connection

    @classmethod
    async def connect(cls, ws_url: str) -> Page:
        """Connect to a page target and enable the Page and Runtime domains."""
        connection = await CDPConnection.connect(ws_url)
        try:
            await connection.send("Page.enable")
            await connection.send("Runtime.enable")
        except BaseException:
            await connection.close()
            raise
        return cls(connection)

    async def goto(self, url: str) -> dict:
        """Navigate to *url*. Returns the Page.navigate result (frameId, loaderId)."""
        return await self.connection.send("Page.navigate", url=url)

    navigate = goto

    async def evaluate(self, script: str) -> Any:
        """Evaluate JavaScript and return its value.

        Promises are awaited and the result is returned by value, so
        objects come back as plain dicts/lists.

        Raises:
            ScriptError: the script threw.
            ProtocolError: the reply had no usable result object.
        """
        result = await self.connection.send(
            "Runtime.evaluate",
            expression=script,
            returnByValue=True,
            awaitPromise=True,
        )

        exception = result.get("exceptionDetails")
        if exception is not None:
            raise script_error(exception)

        remote = result.get("result", {})
        if not isinstance(remote, dict):
            raise ProtocolError(f"Runtime.evaluate returned a malformed result: {remote!r}")
        return remote.get("value")

    async def wait_for_condition(
        self,
        predicate: str,
        timeout: float,
        interval: float = config.ELEMENT_POLL_INTERVAL,
    ) -> bool:
        """Poll a JS predicate until it is truthy or *timeout* seconds pass.

        Returns:
            True if the predicate held in time, False on timeout.
        """
        expression = truthy_js(predicate)
        deadline = time.monotonic() + timeout
        while True:
            if await self.evaluate(expression):
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(interval)

    async def wait_for_element(
        self,
        selector: str,
        timeout: float = 10.0,
        interval: float = config.ELEMENT_POLL_INTERVAL,
    ) -> bool:
        """Wait for a CSS selector to match. False if it never did."""
        return await self.wait_for_condition(selector_exists_js(selector), timeout, interval)

    async def html(self) -> str:
        """Serialized HTML of the whole document."""
        value = await self.evaluate(OUTER_HTML_JS)
        if not isinstance(value, str):
            raise CDPError("Failed to get HTML: JavaScript result was not a string")
        return value

    snapshot_html = html

    async def close(self) -> None:
        """Close the tab and the connection to it."""
        try:
            await self.connection.send("Page.close")
        except ConnectionClosed:
            # The target may drop the socket before it answers
            log.debug("Page closed before acknowledging Page.close")
        finally:
            await self.connection.close()

    async def __aenter__(self) -> Page:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self.connection.closed:
            await self.close()

    def __repr__(self) -> str:
        return f"Page({self.connection.url!r})"


def script_error(details: Any) -> ScriptError:
    """Build a ScriptError from Runtime.evaluate exceptionDetails."""
    if not isinstance(details, dict):
        return ScriptError(str(details))
    exception = details.get("exception")
    if not isinstance(exception, dict):
        exception = {}
    text = exception.get("description") or details.get("text") or "unknown error"
    line = details.get("lineNumber", -1)
    column = details.get("columnNumber", -1)
    return ScriptError(text, line=line, column=column)
