"""Configuration — timeouts, default browser flags, executable override.

Optional settings live in ~/.chrome-cdp/config.json. Environment
variables win over the file:

    CHROME_BIN            path to the browser executable
    CI                    set in CI; adds sandbox/GPU-disabling flags
    CHROME_CDP_HEADLESS   "0", "false" or "no" to launch headed
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

CONFIG_DIR = Path.home() / ".chrome-cdp"
CONFIG_FILE = CONFIG_DIR / "config.json"

# Port discovery (seconds)
DISCOVERY_TIMEOUT = 30.0
DISCOVERY_INTERVAL = 0.1

# Endpoint resolution
ENDPOINT_ATTEMPTS = 10
ENDPOINT_RETRY_DELAY = 0.5
HTTP_TIMEOUT = 5.0

# Session lifecycle (seconds)
IDLE_TIMEOUT = 5 * 60
CHECK_INTERVAL = 60.0

# Page polling
ELEMENT_POLL_INTERVAL = 0.5

BASE_ARGS = ["--disable-blink-features=AutomationControlled"]
CI_ARGS = ["--disable-gpu", "--no-sandbox", "--disable-setuid-sandbox"]

_FALSY = ("0", "false", "no", "off")


def load_config() -> dict[str, Any]:
    """Load the config file, or return an empty config."""
    if CONFIG_FILE.exists():
        try:
            data = json.loads(CONFIG_FILE.read_text())
        except (json.JSONDecodeError, OSError):
            return {}
        if isinstance(data, dict):
            return data
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Write config to disk."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(config, indent=2) + "\n")


def is_ci() -> bool:
    return "CI" in os.environ


def get_chrome_path() -> str | None:
    """Executable override: CHROME_BIN, then the config file."""
    path = os.environ.get("CHROME_BIN")
    if path:
        return path
    return load_config().get("chrome_path") or None


def get_headless() -> bool:
    env = os.environ.get("CHROME_CDP_HEADLESS")
    if env is not None:
        return env.strip().lower() not in _FALSY
    return bool(load_config().get("headless", True))


def get_idle_timeout() -> float:
    return float(load_config().get("idle_timeout", IDLE_TIMEOUT))


def get_check_interval() -> float:
    return float(load_config().get("check_interval", CHECK_INTERVAL))


def default_chrome_args(extra: list[str] | None = None) -> list[str]:
    """Flags every managed session starts with.

    Order matters: the browser lets later flags override earlier ones, so
    configured and caller-supplied flags go last.
    """
    args = list(BASE_ARGS)
    if is_ci():
        args.extend(CI_ARGS)
    configured = load_config().get("chrome_args") or []
    args.extend(str(a) for a in configured)
    if extra:
        args.extend(extra)
    return args
