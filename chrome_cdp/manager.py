"""Browser lifecycle — one shared browser, launched lazily, reaped when idle.

    async with BrowserManager(headless=True) as manager:
        session = await manager.acquire()     # launches Chrome on first use
        page = await session.new_page()
        ...

Repeated acquire() calls hand out the same session. A background task
checks every ``check_interval`` seconds and shuts the browser down once
nobody has called acquire() for ``idle_timeout`` seconds; the next
acquire() launches a fresh one.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any, Awaitable, Callable

from chrome_cdp import config
from chrome_cdp.browser import BrowserProcess
from chrome_cdp.connection import CDPConnection
from chrome_cdp.page import Page

log = logging.getLogger(__name__)

Launcher = Callable[..., Awaitable[BrowserProcess]]
Connector = Callable[[str], Awaitable[CDPConnection]]


class BrowserSession:
    """A running browser paired with its browser-level connection.

    Safe to share between tasks: the connection multiplexes concurrent
    commands on its own.
    """

    def __init__(self, browser: BrowserProcess, connection: CDPConnection) -> None:
        self.browser = browser
        self.connection = connection

    @property
    def alive(self) -> bool:
        return self.browser.alive and not self.connection.closed

    async def send(self, method: str, params: dict | None = None, **kwargs: Any) -> dict:
        """Send a browser-level CDP command."""
        return await self.connection.send(method, params, **kwargs)

    async def new_page(self) -> Page:
        """Open a new tab and return a connected Page for it."""
        ws_url = await self.browser.new_page()
        return await Page.connect(ws_url)

    async def close(self) -> None:
        """Close the connection, then kill the browser."""
        try:
            await self.connection.close()
        finally:
            await self.browser.aterminate()

    async def __aenter__(self) -> BrowserSession:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"BrowserSession({self.browser!r})"


class BrowserManager:
    """Holds at most one BrowserSession behind a lock.

    Args:
        browser_path: Browser binary (default: CHROME_BIN / auto-detect).
        headless: Launch without a window. Default from config (True).
        debug: Log the launch command and browser stderr at INFO.
        chrome_args: Extra flags appended after the defaults.
        idle_timeout: Seconds without acquire() before the browser is shut down.
        check_interval: Seconds between idle checks.
        launcher / connector: Replace BrowserProcess.launch / CDPConnection.connect.
    """

    def __init__(
        self,
        browser_path: str | os.PathLike[str] | None = None,
        headless: bool | None = None,
        debug: bool = False,
        chrome_args: list[str] | None = None,
        *,
        idle_timeout: float | None = None,
        check_interval: float | None = None,
        launcher: Launcher | None = None,
        connector: Connector | None = None,
    ) -> None:
        self.browser_path = browser_path
        self.headless = config.get_headless() if headless is None else headless
        self.debug = debug
        self.chrome_args = list(chrome_args or [])
        self.idle_timeout = config.get_idle_timeout() if idle_timeout is None else idle_timeout
        self.check_interval = (
            config.get_check_interval() if check_interval is None else check_interval
        )
        self._launcher = launcher or BrowserProcess.launch
        self._connector = connector or CDPConnection.connect

        self._lock = asyncio.Lock()
        self._session: BrowserSession | None = None
        self._last_used = time.monotonic()
        self._reaper: asyncio.Task | None = None

    @property
    def session(self) -> BrowserSession | None:
        """The current session, if any. Does not launch or touch the idle clock."""
        return self._session

    async def acquire(self) -> BrowserSession:
        """Return the running session, launching a browser if there is none.

        Concurrent first calls wait on the lock, so only one browser is
        ever launched. A failed launch leaves no session behind.
        """
        async with self._lock:
            self._last_used = time.monotonic()
            self._start_reaper()

            session = self._session
            if session is not None:
                if session.alive:
                    return session
                log.warning("Browser session died (exit status %s); relaunching",
                            session.browser.returncode)
                self._session = None
                await session.close()

            args = config.default_chrome_args(self.chrome_args)
            browser = await self._launcher(self.browser_path, args, self.headless, self.debug)
            try:
                connection = await self._connector(browser.ws_url)
            except BaseException:
                await browser.aterminate()
                raise

            self._session = BrowserSession(browser, connection)
            log.info("Browser session started: %s", browser.ws_url)
            return self._session

    async def reap_idle(self) -> bool:
        """Shut the session down if it has been idle too long. True if it did."""
        async with self._lock:
            session = self._session
            if session is None:
                return False
            idle = time.monotonic() - self._last_used
            if idle <= self.idle_timeout:
                return False
            self._session = None
            log.info("Closing browser after %.0fs idle", idle)
            await session.close()
            return True

    async def close(self) -> None:
        """Stop the idle monitor and shut the browser down."""
        reaper, self._reaper = self._reaper, None
        if reaper is not None:
            reaper.cancel()
            await asyncio.gather(reaper, return_exceptions=True)

        async with self._lock:
            session, self._session = self._session, None
            if session is not None:
                await session.close()

    async def __aenter__(self) -> BrowserManager:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ── Idle monitor ──

    def _start_reaper(self) -> None:
        if self._reaper is None or self._reaper.done():
            self._reaper = asyncio.create_task(self._reap_loop(), name="cdp-idle-reaper")

    async def _reap_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_interval)
            try:
                await self.reap_idle()
            except Exception:  # noqa: BLE001
                log.exception("Idle check failed")

    def __repr__(self) -> str:
        state = "running" if self._session is not None else "idle"
        return f"BrowserManager({state}, idle_timeout={self.idle_timeout:g}s)"
