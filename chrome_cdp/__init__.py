"""chrome-cdp — drive Chrome/Chromium over the DevTools Protocol.

Launches a disposable browser, keeps one multiplexed WebSocket to it,
and shuts it down after a period of inactivity.

Quick start:
    import asyncio
    from chrome_cdp import BrowserManager

    async def main():
        async with BrowserManager() as manager:
            session = await manager.acquire()
            page = await session.new_page()
            await page.goto("https://example.com")
            print(await page.evaluate("document.title"))
            await page.close()

    asyncio.run(main())
"""

from chrome_cdp.browser import BrowserProcess
from chrome_cdp.connection import CDPConnection
from chrome_cdp.errors import (
    BrowserError,
    BrowserNotRunning,
    CDPError,
    CommandError,
    CommandQueueClosed,
    ConnectionClosed,
    EndpointStatusError,
    MissingFieldError,
    PortDiscoveryError,
    ProtocolError,
    ScriptError,
    SerializationError,
    TransportError,
)
from chrome_cdp.manager import BrowserManager, BrowserSession
from chrome_cdp.page import Page

__version__ = "0.1.0"
__all__ = [
    "BrowserManager",
    "BrowserSession",
    "BrowserProcess",
    "CDPConnection",
    "Page",
    "CDPError",
    "BrowserError",
    "PortDiscoveryError",
    "TransportError",
    "BrowserNotRunning",
    "EndpointStatusError",
    "ConnectionClosed",
    "CommandQueueClosed",
    "ProtocolError",
    "CommandError",
    "MissingFieldError",
    "SerializationError",
    "ScriptError",
]
