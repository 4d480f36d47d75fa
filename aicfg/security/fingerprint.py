# -*- coding: utf-8 -*-
"""Stable host signals used to bind encryption keys to one device."""

from __future__ import annotations

import getpass
import platform
from pathlib import Path
from typing import Callable

FingerprintProvider = Callable[[], str]

_MACHINE_ID_FILES = ("/etc/machine-id", "/var/lib/dbus/machine-id")


def _machine_id() -> str:
    for candidate in _MACHINE_ID_FILES:
        try:
            value = Path(candidate).read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if value:
            return value
    return ""


def _user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def device_fingerprint() -> str:
    """Join host signals that survive restarts but differ across machines."""
    parts = [
        platform.node(),
        platform.system(),
        platform.machine(),
        _user(),
        _machine_id(),
    ]
    return "|".join(parts)


def static_fingerprint(value: str) -> FingerprintProvider:
    """Return a provider that always yields *value* (tests, containers)."""

    def _provider() -> str:
        return value

    return _provider
