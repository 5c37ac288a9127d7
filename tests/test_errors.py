"""Tests for the exception hierarchy and its messages."""
from __future__ import annotations

import chrome_cdp
from chrome_cdp.errors import (
    BrowserError,
    BrowserNotRunning,
    CDPError,
    CommandError,
    EndpointStatusError,
    MissingFieldError,
    PortDiscoveryError,
    ProtocolError,
    ScriptError,
    TransportError,
)


def test_everything_is_a_cdp_error():
    for name in chrome_cdp.__all__:
        obj = getattr(chrome_cdp, name)
        if isinstance(obj, type) and issubclass(obj, Exception):
            assert issubclass(obj, CDPError), name


def test_categories():
    assert issubclass(PortDiscoveryError, BrowserError)
    assert issubclass(BrowserNotRunning, TransportError)
    assert issubclass(EndpointStatusError, TransportError)
    assert issubclass(CommandError, ProtocolError)
    assert issubclass(MissingFieldError, ProtocolError)


def test_command_error_message():
    err = CommandError(-32000, "Cannot navigate to invalid URL", method="Page.navigate", command_id=7)
    assert str(err) == "CDP error for command 7 (Page.navigate): -32000 - Cannot navigate to invalid URL"


def test_browser_not_running_message():
    err = BrowserNotRunning("http://127.0.0.1:9222/json/version", "Connection refused")
    assert str(err) == "Cannot connect to browser at http://127.0.0.1:9222/json/version: Connection refused"
    assert str(BrowserNotRunning("http://x")) == "Cannot connect to browser at http://x"


def test_script_error_message():
    err = ScriptError("TypeError: x is null", line=3, column=14)
    assert str(err) == "JavaScript execution error at line 3, column 14: TypeError: x is null"


def test_port_discovery_error_fields():
    err = PortDiscoveryError("failed", executable="chrome", profile_dir="/tmp/p", log="boom",
                             exited=True, returncode=1)
    assert err.executable == "chrome"
    assert (err.exited, err.returncode, err.log) == (True, 1, "boom")


def test_version():
    assert chrome_cdp.__version__ == "0.1.0"
