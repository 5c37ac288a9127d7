"""Tests for browser launch and port discovery — fake browsers, no Chrome needed."""
from __future__ import annotations

import asyncio
import os
import stat
import subprocess
import sys
import threading
import time
from pathlib import Path

import pytest

from chrome_cdp import browser
from chrome_cdp.browser import (
    BrowserProcess,
    build_launch_args,
    discover_port,
    find_chrome,
    parse_devtools_port,
    resolve_executable,
)
from chrome_cdp.errors import BrowserError, BrowserNotRunning, PortDiscoveryError

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh scripts")


class FakeProcess:
    def __init__(self, returncode: int | None = None) -> None:
        self.returncode = returncode

    def poll(self):
        return self.returncode


# ── Port parsing ──


def test_parse_browser_line():
    line = "DevTools listening on ws://127.0.0.1:9222/devtools/browser/abc"
    assert parse_devtools_port(line) == 9222


def test_parse_page_line_isolates_digits():
    line = "DevTools listening on ws://127.0.0.1:41327/devtools/page/ABC123"
    assert parse_devtools_port(line) == 41327


def test_parse_ignores_other_lines():
    assert parse_devtools_port("[0101/ERROR] ws://127.0.0.1:9222/devtools/browser/x") is None
    assert parse_devtools_port("DevTools listening on ws://localhost:9222/x") is None
    assert parse_devtools_port("DevTools listening on ws://127.0.0.1:abc/x") is None
    assert parse_devtools_port("DevTools listening on ws://127.0.0.1:99999/x") is None


# ── Discovery ──


def test_discover_port_from_log(tmp_path):
    log = tmp_path / "chrome_stderr.log"
    log.write_text(
        "[1234:5678:ERROR:gpu_init.cc] Passthrough is not supported\n"
        "\n"
        "DevTools listening on ws://127.0.0.1:9222/devtools/browser/abc\n"
    )
    assert discover_port(log, timeout=1, process=FakeProcess()) == 9222


def test_discover_port_waits_for_late_line(tmp_path):
    log = tmp_path / "chrome_stderr.log"
    log.write_text("starting...\n")

    def write_later():
        time.sleep(0.2)
        with open(log, "a") as f:
            f.write("DevTools listening on ws://127.0.0.1:35001/devtools/browser/x\n")

    t = threading.Thread(target=write_later)
    t.start()
    try:
        assert discover_port(log, timeout=5, interval=0.02, process=FakeProcess()) == 35001
    finally:
        t.join()


def test_discover_timeout_with_live_process(tmp_path):
    log = tmp_path / "chrome_stderr.log"
    log.write_text("Fontconfig error: no fonts\n")

    with pytest.raises(PortDiscoveryError) as exc_info:
        discover_port(
            log, timeout=0.2, interval=0.02, process=FakeProcess(None),
            executable="/usr/bin/chromium", profile_dir=tmp_path,
        )
    err = exc_info.value
    assert not err.exited
    assert err.returncode is None
    assert "still running" in str(err)
    assert "Fontconfig error" in str(err)
    assert "/usr/bin/chromium" in str(err)
    assert str(tmp_path) in str(err)


def test_discover_reports_early_exit(tmp_path):
    log = tmp_path / "chrome_stderr.log"
    log.write_text("error while loading shared libraries: libnss3.so\n")

    started = time.monotonic()
    with pytest.raises(PortDiscoveryError) as exc_info:
        discover_port(log, timeout=30, interval=0.01, process=FakeProcess(127))
    err = exc_info.value
    assert err.exited
    assert err.returncode == 127
    assert "exited early with status: 127" in str(err)
    assert "libnss3" in err.log
    # Does not sit out the full timeout once the process is gone
    assert time.monotonic() - started < 5


def test_discover_unreadable_log(tmp_path):
    with pytest.raises(PortDiscoveryError) as exc_info:
        discover_port(tmp_path / "missing.log", timeout=0, process=FakeProcess(None))
    assert exc_info.value.log == "(unreadable)"


# ── Arguments and executable ──


def test_build_launch_args_defaults_then_extras(tmp_path):
    cmd = build_launch_args("/opt/chrome", tmp_path, ["--no-sandbox", "--remote-debugging-port=9333"])
    assert cmd[0] == "/opt/chrome"
    assert "--remote-debugging-port=0" in cmd
    assert f"--user-data-dir={tmp_path}" in cmd
    assert "--password-store=basic" in cmd
    assert "--no-first-run" in cmd
    assert "--headless=new" in cmd
    # Caller flags come last so they win
    assert cmd[-2:] == ["--no-sandbox", "--remote-debugging-port=9333"]


def test_build_launch_args_headed(tmp_path):
    assert not any(a.startswith("--headless") for a in build_launch_args("chrome", tmp_path, headless=False))


def test_resolve_executable_precedence(monkeypatch, tmp_path):
    monkeypatch.setattr("chrome_cdp.config.CONFIG_FILE", tmp_path / "config.json")
    monkeypatch.setenv("CHROME_BIN", "/env/chrome")
    assert resolve_executable("/explicit/chrome") == "/explicit/chrome"
    assert resolve_executable() == "/env/chrome"

    monkeypatch.delenv("CHROME_BIN")
    monkeypatch.setattr(browser, "find_chrome", lambda: None)
    assert resolve_executable() == browser._platform_default()


def test_find_chrome():
    result = find_chrome()
    assert result is None or isinstance(result, str)


# ── Launch with fake browsers ──


def _script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


@pytest.fixture
def fake_resolve(monkeypatch):
    async def _resolve(port, *args, **kwargs):
        return f"ws://127.0.0.1:{port}/devtools/browser/fake"

    monkeypatch.setattr(browser, "retry_resolve", _resolve)


@posix_only
def test_launch_discovers_port_and_terminates(tmp_path, fake_resolve):
    exe = _script(
        tmp_path / "fake-chrome",
        'echo "args: $@" >&2\n'
        'echo "DevTools listening on ws://127.0.0.1:9555/devtools/browser/abc" >&2\n'
        "exec sleep 30\n",
    )

    async def _main():
        proc = await BrowserProcess.launch(exe, ["--lang=en-US"], headless=True)
        try:
            log = (proc.profile_dir / browser.STDERR_LOG).read_text()
            return proc, proc.alive, proc.profile_dir.is_dir(), log
        finally:
            await proc.aterminate()

    proc, alive, had_profile, log = asyncio.run(_main())
    assert proc.port == 9555
    assert proc.ws_url == "ws://127.0.0.1:9555/devtools/browser/fake"
    assert alive
    assert had_profile
    assert "--remote-debugging-port=0" in log
    assert "--lang=en-US" in log
    assert not proc.alive
    assert not proc.profile_dir.exists()


@posix_only
def test_launch_profiles_are_unique(tmp_path, fake_resolve):
    exe = _script(
        tmp_path / "fake-chrome",
        'echo "DevTools listening on ws://127.0.0.1:9556/devtools/browser/abc" >&2\n'
        "exec sleep 30\n",
    )

    async def _main():
        a, b = await asyncio.gather(BrowserProcess.launch(exe), BrowserProcess.launch(exe))
        try:
            return a.profile_dir, b.profile_dir
        finally:
            a.terminate()
            b.terminate()

    dir_a, dir_b = asyncio.run(_main())
    assert dir_a != dir_b


@posix_only
def test_launch_reports_crash_on_startup(tmp_path, fake_resolve):
    exe = _script(tmp_path / "crashing-chrome", 'echo "boom: missing libnss3" >&2\nexit 3\n')

    with pytest.raises(PortDiscoveryError) as exc_info:
        asyncio.run(BrowserProcess.launch(exe, discovery_timeout=10))
    err = exc_info.value
    assert err.exited
    assert err.returncode == 3
    assert "boom: missing libnss3" in err.log
    assert err.executable == str(exe)
    assert not Path(err.profile_dir).exists()


@posix_only
def test_launch_kills_browser_when_endpoint_fails(tmp_path, monkeypatch):
    pid_file = tmp_path / "pid"
    exe = _script(
        tmp_path / "fake-chrome",
        f'echo $$ > "{pid_file}"\n'
        'echo "DevTools listening on ws://127.0.0.1:9557/devtools/browser/abc" >&2\n'
        "exec sleep 30\n",
    )

    async def _unreachable(port, *args, **kwargs):
        raise BrowserNotRunning(f"http://127.0.0.1:{port}/json/version")

    monkeypatch.setattr(browser, "retry_resolve", _unreachable)

    with pytest.raises(BrowserNotRunning):
        asyncio.run(BrowserProcess.launch(exe))

    pid = int(pid_file.read_text())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def test_launch_missing_executable(tmp_path):
    with pytest.raises(BrowserError) as exc_info:
        asyncio.run(BrowserProcess.launch(tmp_path / "no-such-chrome"))
    assert "no-such-chrome" in str(exc_info.value)


# ── Termination ──


def _sleeper() -> subprocess.Popen:
    return subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])


def test_terminate_is_idempotent(tmp_path):
    profile = tmp_path / "profile"
    profile.mkdir()
    proc = BrowserProcess(_sleeper(), 9222, "ws://x", profile, "chrome")
    assert proc.alive

    proc.terminate()
    proc.terminate()
    assert not proc.alive
    assert not profile.exists()


def test_terminate_already_exited_process(tmp_path):
    child = subprocess.Popen([sys.executable, "-c", "pass"])
    child.wait()
    proc = BrowserProcess(child, 9222, "ws://x", tmp_path / "gone", "chrome")
    proc.terminate()
    assert proc.returncode is None  # handle released


def test_terminate_swallows_vanished_process(tmp_path):
    class Vanished:
        pid = 4242
        returncode = None

        def poll(self):
            return None

        def kill(self):
            raise ProcessLookupError(3, "No such process")

    proc = BrowserProcess(Vanished(), 9222, "ws://x", tmp_path / "gone", "chrome")
    proc.terminate()
    assert proc.process is None
