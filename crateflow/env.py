"""Environment variable accessors for crateflow.

All process-level knobs are read through these helpers so that tests can redirect them with
``monkeypatch.setenv`` instead of touching module globals.
"""

from __future__ import annotations

import os
import platform as _platform
from pathlib import Path
from typing import Optional

_ARCH_ALIASES = {"amd64": "x86_64", "arm64": "aarch64"}


def get_crateflow_cache_path() -> Path:
    """Get the root directory of the dependency cache.

    Returns
    -------
    Path
        The value of ``CRATEFLOW_CACHE_PATH``, or ``~/.cache/crateflow`` if unset.
    """
    value = os.environ.get("CRATEFLOW_CACHE_PATH")
    if value:
        return Path(value).expanduser()
    return Path.home() / ".cache" / "crateflow"


def get_host_platform() -> str:
    """Get the platform identifier of the running host, e.g. ``x86_64-linux``."""
    machine = _platform.machine().lower()
    machine = _ARCH_ALIASES.get(machine, machine)
    return f"{machine}-{_platform.system().lower()}"


def get_crateflow_platform() -> Optional[str]:
    """Get the platform override from ``CRATEFLOW_PLATFORM``, if any."""
    return os.environ.get("CRATEFLOW_PLATFORM") or None


def get_crateflow_profile() -> Optional[str]:
    """Get the build profile override from ``CRATEFLOW_PROFILE``, if any."""
    return os.environ.get("CRATEFLOW_PROFILE") or None


def get_crateflow_log_level() -> str:
    """Get the log level from ``CRATEFLOW_LOG_LEVEL``. Defaults to ``INFO``."""
    return os.environ.get("CRATEFLOW_LOG_LEVEL", "INFO").upper()


def get_default_shell() -> str:
    """Get the interactive shell used by ``crateflow develop``."""
    return os.environ.get("SHELL") or "/bin/sh"
