"""Exceptions raised by chrome-cdp.

Everything derives from CDPError, so callers that don't care about the
failure mode can catch a single type.
"""

from __future__ import annotations


class CDPError(Exception):
    """Base error for the Chrome DevTools Protocol client."""

    pass


# ── Process ──


class BrowserError(CDPError):
    """The browser process could not be spawned or managed."""

    def __init__(self, message: str, executable: str | None = None) -> None:
        self.executable = executable
        super().__init__(message)


class PortDiscoveryError(BrowserError):
    """The debugging port never showed up in the browser's stderr log."""

    def __init__(
        self,
        message: str,
        *,
        executable: str | None = None,
        profile_dir: str | None = None,
        log: str = "",
        exited: bool = False,
        returncode: int | None = None,
    ) -> None:
        self.profile_dir = profile_dir
        self.log = log
        self.exited = exited
        self.returncode = returncode
        super().__init__(message, executable=executable)


# ── Transport ──


class TransportError(CDPError):
    """Connecting to, reading from, or writing to the browser failed."""

    pass


class BrowserNotRunning(TransportError):
    """Raised when the CDP HTTP endpoint is unreachable."""

    def __init__(self, url: str, reason: object = None) -> None:
        self.url = url
        message = f"Cannot connect to browser at {url}"
        if reason is not None:
            message += f": {reason}"
        super().__init__(message)


class EndpointStatusError(TransportError):
    """The CDP HTTP endpoint answered with a non-success status."""

    def __init__(self, url: str, status: int, body: str) -> None:
        self.url = url
        self.status = status
        self.body = body
        super().__init__(
            f"Chrome debugger returned error status {status} ({url}). Response: {body}"
        )


class ConnectionClosed(TransportError):
    """The connection went away before a command got its response."""

    pass


class CommandQueueClosed(TransportError):
    """The connection no longer accepts new commands."""

    pass


# ── Protocol ──


class ProtocolError(CDPError):
    """The browser answered, but not with what was asked for."""

    pass


class CommandError(ProtocolError):
    """A command response carried an ``error`` object."""

    def __init__(
        self,
        code: int,
        message: str,
        *,
        method: str | None = None,
        command_id: int | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.method = method
        self.command_id = command_id
        where = f"command {command_id}"
        if method:
            where += f" ({method})"
        super().__init__(f"CDP error for {where}: {code} - {message}")


class MissingFieldError(ProtocolError):
    """A response was well-formed but lacked a required field."""

    def __init__(self, field: str, body: str, url: str | None = None) -> None:
        self.field = field
        self.body = body
        self.url = url
        source = f" from {url}" if url else ""
        super().__init__(f"Response{source} does not contain {field}. Response: {body}")


# ── Payloads ──


class SerializationError(CDPError):
    """A payload could not be encoded or decoded as JSON."""

    def __init__(self, message: str, body: str = "") -> None:
        self.body = body
        super().__init__(message)


class ScriptError(CDPError):
    """JavaScript evaluated in the page threw."""

    def __init__(self, text: str, line: int = -1, column: int = -1) -> None:
        self.text = text
        self.line = line
        self.column = column
        super().__init__(
            f"JavaScript execution error at line {line}, column {column}: {text}"
        )
