"""Chrome process launch and debugging-port discovery.

The browser is started with ``--remote-debugging-port=0`` so the OS picks
a free port. Chrome announces it on stderr:

    DevTools listening on ws://127.0.0.1:41327/devtools/browser/6c1f...

stderr is redirected to a file inside the throwaway profile directory and
polled until that line appears.

    proc = await BrowserProcess.launch(headless=True)
    try:
        ws_url = await proc.new_page()
    finally:
        proc.terminate()
"""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import shutil
import subprocess
import sys
import tempfile
import time
import uuid
from pathlib import Path
from typing import Any

from chrome_cdp import config
from chrome_cdp.endpoint import create_page, retry_resolve
from chrome_cdp.errors import BrowserError, PortDiscoveryError

log = logging.getLogger(__name__)

LISTENING_MARKER = "DevTools listening on"
HOST_MARKER = "127.0.0.1:"
STDERR_LOG = "chrome_stderr.log"


# ── Executable lookup ──


def find_chrome() -> str | None:
    """Auto-detect a Chrome/Chromium binary path."""
    candidates: list[str] = []

    if sys.platform == "darwin":
        candidates = [
            "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
            "/Applications/Chromium.app/Contents/MacOS/Chromium",
            "/Applications/Google Chrome Canary.app/Contents/MacOS/Google Chrome Canary",
            "/Applications/Brave Browser.app/Contents/MacOS/Brave Browser",
            "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
        ]
    elif sys.platform.startswith("linux"):
        candidates = [
            "google-chrome",
            "google-chrome-stable",
            "chromium",
            "chromium-browser",
            "brave-browser",
            "microsoft-edge",
        ]
    elif sys.platform == "win32":
        candidates = [
            os.path.expandvars(r"%ProgramFiles%\Google\Chrome\Application\chrome.exe"),
            os.path.expandvars(r"%ProgramFiles(x86)%\Google\Chrome\Application\chrome.exe"),
            os.path.expandvars(r"%LocalAppData%\Google\Chrome\Application\chrome.exe"),
        ]

    for c in candidates:
        if os.path.isfile(c):
            return c
        # Bare names are looked up on PATH
        if os.path.sep not in c:
            found = shutil.which(c)
            if found:
                return found

    return None


def _platform_default() -> str:
    if sys.platform == "win32":
        return r"C:\Program Files\Google\Chrome\Application\chrome.exe"
    if sys.platform == "darwin":
        return "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
    if sys.platform.startswith("linux"):
        return "/usr/bin/google-chrome"
    return "chrome"


def resolve_executable(path: str | os.PathLike[str] | None = None) -> str:
    """Pick the browser binary: explicit path, CHROME_BIN/config, auto-detect, platform default."""
    if path:
        return os.fspath(path)
    return config.get_chrome_path() or find_chrome() or _platform_default()


def build_launch_args(
    executable: str,
    profile_dir: str | os.PathLike[str],
    extra_args: list[str] | None = None,
    headless: bool = True,
) -> list[str]:
    """Full argv for the browser. Caller flags go last so they take precedence."""
    cmd = [
        executable,
        "--remote-debugging-port=0",
        f"--user-data-dir={os.fspath(profile_dir)}",
        "--password-store=basic",
        "--no-first-run",
    ]
    if headless:
        cmd.append("--headless=new")
    if extra_args:
        cmd.extend(extra_args)
    return cmd


# ── Port discovery ──


def parse_devtools_port(line: str) -> int | None:
    """Extract the port from a ``DevTools listening on`` line, else None."""
    if LISTENING_MARKER not in line:
        return None
    _, sep, rest = line.partition(HOST_MARKER)
    if not sep:
        return None
    token = rest.split("/", 1)[0].strip()
    if not token.isdigit():
        return None
    port = int(token)
    if port > 65535:
        return None
    return port


def _scan_log(text: str, debug: bool = False) -> int | None:
    for line in text.splitlines():
        if debug:
            log.info("CHROME STDERR: %s", line)
        port = parse_devtools_port(line)
        if port is not None:
            return port
    return None


def _read_log(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def discover_port(
    log_path: str | os.PathLike[str],
    timeout: float = config.DISCOVERY_TIMEOUT,
    *,
    interval: float = config.DISCOVERY_INTERVAL,
    process: Any = None,
    executable: str | None = None,
    profile_dir: str | os.PathLike[str] | None = None,
    debug: bool = False,
) -> int:
    """Poll the browser's stderr log until the debugging port shows up.

    Blocking; run it in a worker thread. *process* only needs ``poll()``
    and ``returncode``; when given, an exited process ends the wait early
    and the error reports its exit status.

    Raises:
        PortDiscoveryError: no port within *timeout*, or the process died.
    """
    path = Path(log_path)
    deadline = time.monotonic() + timeout
    exited = False

    while True:
        text = _read_log(path)
        if text is not None:
            port = _scan_log(text, debug)
            if port is not None:
                return port
        if exited or time.monotonic() >= deadline:
            break
        # One more read after the process is gone: it may have flushed the line on exit
        if process is not None and process.poll() is not None:
            exited = True
            continue
        time.sleep(interval)

    if process is not None and process.poll() is not None:
        exited = True

    raise _discovery_error(
        path,
        timeout=timeout,
        process=process if exited else None,
        executable=executable,
        profile_dir=profile_dir,
    )


def _discovery_error(
    log_path: Path,
    *,
    timeout: float,
    process: Any,
    executable: str | None,
    profile_dir: str | os.PathLike[str] | None,
) -> PortDiscoveryError:
    stderr = _read_log(log_path)
    if stderr is None:
        stderr = "(unreadable)"
    os_info = f"{platform.system()} {platform.machine()} ({os.name})"
    profile = os.fspath(profile_dir) if profile_dir is not None else str(log_path.parent)

    msg = (
        "=== Chrome Browser Launch Failure ===\n"
        f"OS: {os_info}\n"
        f"Chrome Executable: {executable!r}\n"
        f"User Data Dir: {profile!r}\n"
        f"=== Chrome stderr ===\n{stderr}\n"
        "=== End of stderr ==="
    )

    if process is not None:
        returncode = process.returncode
        msg += f"\n\nChrome process exited early with status: {returncode}"
        return PortDiscoveryError(
            msg,
            executable=executable,
            profile_dir=profile,
            log=stderr,
            exited=True,
            returncode=returncode,
        )

    msg += (
        f"\n\nChrome process is still running but debugging port was not found "
        f"after {timeout:g} seconds.\n\n"
        "Troubleshooting:\n"
        "- If running in CI, ensure Chrome/Chromium is installed\n"
        "- Try setting CHROME_BIN environment variable\n"
        "- For Linux CI, add --no-sandbox flag"
    )
    return PortDiscoveryError(msg, executable=executable, profile_dir=profile, log=stderr)


# ── Browser process ──


class BrowserProcess:
    """A running browser with its debugging port and disposable profile.

    The owner must call terminate() (or use ``async with``); it kills the
    process and deletes the profile directory. terminate() is safe to
    call more than once and on a process that already exited.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        port: int,
        ws_url: str,
        profile_dir: Path,
        executable: str,
    ) -> None:
        self.process: subprocess.Popen | None = process
        self.port = port
        self.ws_url = ws_url
        self.profile_dir = profile_dir
        self.executable = executable
        self.pid = process.pid

    @classmethod
    async def launch(
        cls,
        executable_path: str | os.PathLike[str] | None = None,
        args: list[str] | None = None,
        headless: bool = True,
        debug: bool = False,
        *,
        discovery_timeout: float = config.DISCOVERY_TIMEOUT,
    ) -> BrowserProcess:
        """Start a browser and wait until its control endpoint answers.

        Args:
            executable_path: Browser binary. Defaults to CHROME_BIN, then
                             auto-detection, then the platform default.
            args: Extra command-line flags, appended after the defaults.
            headless: Run without a window (default: True).
            debug: Log the command line and the browser's stderr at INFO.
            discovery_timeout: Seconds to wait for the debugging port.

        Raises:
            BrowserError: the binary could not be started.
            PortDiscoveryError: the port never appeared.
            TransportError / ProtocolError: the endpoint never answered properly.
        """
        executable = resolve_executable(executable_path)

        # Fresh profile per launch so concurrent browsers never share state
        profile_dir = Path(tempfile.gettempdir()) / f"chrome-{uuid.uuid4()}"
        try:
            profile_dir.mkdir(parents=True)
        except OSError as e:
            raise BrowserError(
                f"Failed to create profile directory {profile_dir}: {e}", executable
            ) from e

        cmd = build_launch_args(executable, profile_dir, args, headless)
        log_path = profile_dir / STDERR_LOG
        if debug:
            log.info("Launching Chrome: %s", cmd)
        else:
            log.debug("Launching Chrome: %s", cmd)

        try:
            with open(log_path, "wb") as stderr:
                proc = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=stderr,
                )
        except OSError as e:
            shutil.rmtree(profile_dir, ignore_errors=True)
            raise BrowserError(f"Failed to launch {executable}: {e}", executable) from e

        try:
            port = await asyncio.to_thread(
                discover_port,
                log_path,
                discovery_timeout,
                process=proc,
                executable=executable,
                profile_dir=profile_dir,
                debug=debug,
            )
            ws_url = await retry_resolve(port)
        except BaseException:
            _kill(proc)
            shutil.rmtree(profile_dir, ignore_errors=True)
            raise

        log.info("Chrome launched (pid %d, port %d): %s", proc.pid, port, executable)
        return cls(proc, port, ws_url, profile_dir, executable)

    @property
    def alive(self) -> bool:
        return self.process is not None and self.process.poll() is None

    @property
    def returncode(self) -> int | None:
        return self.process.returncode if self.process is not None else None

    async def new_page(self) -> str:
        """Open a new page target and return its WebSocket address."""
        return await create_page(self.port)

    def terminate(self) -> None:
        """Kill the browser and remove its profile. Best-effort, idempotent."""
        proc, self.process = self.process, None
        if proc is not None:
            _kill(proc)
            log.info("Chrome terminated (pid %d)", proc.pid)
        shutil.rmtree(self.profile_dir, ignore_errors=True)

    async def aterminate(self) -> None:
        """terminate() off the event loop; waiting for exit can block briefly."""
        await asyncio.to_thread(self.terminate)

    async def __aenter__(self) -> BrowserProcess:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aterminate()

    def __repr__(self) -> str:
        state = "running" if self.alive else "stopped"
        return f"BrowserProcess(pid={self.pid}, port={self.port}, {state})"


def _kill(proc: subprocess.Popen, timeout: float = 5.0) -> None:
    """Force-kill and reap. The process may already be gone; that's fine."""
    if proc.poll() is not None:
        return
    try:
        proc.kill()
    except OSError:
        return
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        log.warning("Chrome (pid %d) did not exit after kill", proc.pid)
