"""chrome-cdp CLI — launch a throwaway browser and run one-off page commands.

Usage:
    chrome-cdp <command> [args...] [--headed] [--debug] [-- chrome flags...]
    chrome-cdp --help

Examples:
    chrome-cdp launch                          # Start Chrome, print its endpoint
    chrome-cdp eval example.com document.title # Evaluate JS on a page
    chrome-cdp html https://example.com        # Dump the page HTML
    chrome-cdp wait example.com h1 5           # Wait up to 5s for an element
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any

from chrome_cdp import config
from chrome_cdp.browser import BrowserProcess
from chrome_cdp.errors import BrowserError, CDPError
from chrome_cdp.manager import BrowserManager
from chrome_cdp.page import Page

# ── Colors (disable with NO_COLOR env var) ──

_NO_COLOR = os.environ.get("NO_COLOR") or not sys.stdout.isatty()


def _dim(s: str) -> str:
    return s if _NO_COLOR else f"\033[2m{s}\033[0m"


def _bold(s: str) -> str:
    return s if _NO_COLOR else f"\033[1m{s}\033[0m"


def _cyan(s: str) -> str:
    return s if _NO_COLOR else f"\033[36m{s}\033[0m"


def _green(s: str) -> str:
    return s if _NO_COLOR else f"\033[32m{s}\033[0m"


def _red(s: str) -> str:
    return s if _NO_COLOR else f"\033[31m{s}\033[0m"


# ── Help text ──

COMMANDS_HELP = {
    "launch": {
        "usage": "chrome-cdp launch [--headed] [--debug] [-- chrome flags...]",
        "desc": (
            "Start Chrome with a fresh, disposable profile and an OS-assigned\n"
            "debugging port. Prints the port, pid and WebSocket address, then\n"
            "keeps the browser running until Ctrl-C."
        ),
        "example": (
            "  $ chrome-cdp launch\n"
            "  ✓ Chrome launched (pid 48213, port 41327)\n"
            "  ws://127.0.0.1:41327/devtools/browser/6c1f..."
        ),
        "hint": "Flags after '--' go straight to Chrome, e.g. -- --no-sandbox",
    },
    "eval": {
        "usage": "chrome-cdp eval <url> <js>",
        "desc": "Open the URL in a new tab, wait for it to load, and print the result of the expression as JSON.",
        "example": '  $ chrome-cdp eval example.com "document.title"\n  Example Domain',
    },
    "html": {
        "usage": "chrome-cdp html <url>",
        "desc": "Open the URL and print the document's serialized HTML.",
        "example": "  $ chrome-cdp html example.com > page.html",
    },
    "wait": {
        "usage": "chrome-cdp wait <url> <css-selector> [seconds]",
        "desc": "Open the URL and wait for a selector to match (default: 10 seconds).",
        "example": "  $ chrome-cdp wait example.com h1 5\n  ✓ Found: h1",
        "hint": "Exits with status 1 if the element never appeared.",
    },
}


def print_main_help() -> None:
    """Print the main help screen."""
    print(_bold("chrome-cdp") + " — Drive Chrome over the DevTools Protocol\n")
    print(_bold("Usage:") + " chrome-cdp <command> [args...] [--headed] [--debug] [-- chrome flags...]\n")

    print(f"  {_cyan('Commands')}")
    for cmd, desc in [
        ("launch", "Start Chrome and print its endpoint"),
        ("eval <url> <js>", "Evaluate JavaScript on a page"),
        ("html <url>", "Print a page's HTML"),
        ("wait <url> <sel> [s]", "Wait for an element to appear"),
        ("version", "Print the version"),
    ]:
        print(f"    {cmd:<24} {_dim(desc)}")
    print()

    print(_dim("Env: CHROME_BIN — browser executable (default: auto-detect)"))
    print(_dim("     CI — add --no-sandbox/--disable-gpu flags"))
    print(_dim("     NO_COLOR — disable colored output"))
    print()
    print(_dim("Run 'chrome-cdp <command> --help' for detailed help on any command."))


def print_command_help(cmd: str) -> None:
    """Print help for a specific command."""
    info = COMMANDS_HELP.get(cmd)
    if not info:
        print(f"Unknown command: {cmd}")
        print("Run 'chrome-cdp --help' to see all commands.")
        return

    print(_bold(info["usage"]))
    print()
    print(info["desc"])

    if "example" in info:
        print(f"\n{_cyan('Example:')}")
        print(info["example"])

    if "hint" in info:
        print(f"\n{_dim('Tip:')} {info['hint']}")


# ── Argument handling ──


def split_args(args: list[str]) -> tuple[list[str], dict[str, bool], list[str]]:
    """Split argv into (positional, flags, chrome flags after '--')."""
    chrome_flags: list[str] = []
    if "--" in args:
        idx = args.index("--")
        args, chrome_flags = args[:idx], args[idx + 1:]

    flags = {"headed": False, "debug": False}
    positional = []
    for a in args:
        if a in ("--headed", "--debug"):
            flags[a[2:]] = True
        else:
            positional.append(a)
    return positional, flags, chrome_flags


def _normalize_url(url: str) -> str:
    if "://" in url or url.startswith(("about:", "data:")):
        return url
    return "https://" + url


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False)


# ── Command dispatch ──


async def run_launch(flags: dict[str, bool], chrome_flags: list[str]) -> None:
    proc = await BrowserProcess.launch(
        args=config.default_chrome_args(chrome_flags),
        headless=not flags["headed"],
        debug=flags["debug"],
    )
    try:
        print(_green(f"✓ Chrome launched (pid {proc.pid}, port {proc.port})"))
        print(proc.ws_url)
        print(_dim("Press Ctrl-C to stop."))
        await asyncio.Event().wait()
    finally:
        proc.terminate()


async def _open_page(manager: BrowserManager, url: str) -> Page:
    session = await manager.acquire()
    page = await session.new_page()
    try:
        await page.goto(_normalize_url(url))
        await page.wait_for_condition("document.readyState === 'complete'", timeout=30)
    except BaseException:
        await page.close()
        raise
    return page


async def run_page_command(
    cmd: str, args: list[str], flags: dict[str, bool], chrome_flags: list[str]
) -> int:
    """Execute a page command, print its output, return the exit code."""
    timeout = 10.0
    if cmd == "wait" and len(args) > 2:
        try:
            timeout = float(args[2])
        except ValueError:
            print(_red(f"✗ Invalid timeout: {args[2]}"))
            return 2

    async with BrowserManager(
        headless=not flags["headed"], debug=flags["debug"], chrome_args=chrome_flags
    ) as manager:
        async with await _open_page(manager, args[0]) as page:
            if cmd == "eval":
                print(_format_value(await page.evaluate(args[1])))
                return 0

            if cmd == "html":
                print(await page.html())
                return 0

            selector = args[1]
            if await page.wait_for_element(selector, timeout=timeout):
                print(_green(f"✓ Found: {selector}"))
                return 0
            print(_red(f"✗ Not found after {timeout:g}s: {selector}"))
            return 1


_MIN_ARGS = {"eval": 2, "html": 1, "wait": 2}


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = sys.argv[1:] if argv is None else argv

    # No args or help flag
    if not args or args[0] in ("--help", "-h", "help"):
        print_main_help()
        return

    cmd = args[0].lower()
    positional, flags, chrome_flags = split_args(args[1:])

    # Per-command help
    if positional and positional[0] in ("--help", "-h"):
        print_command_help(cmd)
        return

    # Version
    if cmd in ("--version", "-V", "version"):
        from chrome_cdp import __version__
        print(f"chrome-cdp {__version__}")
        return

    if flags["debug"]:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    try:
        if cmd == "launch":
            asyncio.run(run_launch(flags, chrome_flags))
            return

        if cmd not in _MIN_ARGS:
            print(_red(f"✗ Unknown command: {cmd}"))
            print("Run 'chrome-cdp --help' to see all commands.")
            sys.exit(2)

        if len(positional) < _MIN_ARGS[cmd]:
            print_command_help(cmd)
            sys.exit(2)

        code = asyncio.run(run_page_command(cmd, positional, flags, chrome_flags))
        if code:
            sys.exit(code)
    except BrowserError as e:
        print(_red("✗ Browser failed to start\n"))
        print(str(e))
        sys.exit(1)
    except CDPError as e:
        print(_red(f"✗ {e}"))
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
