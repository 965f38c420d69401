"""Host operating system queries."""

from __future__ import annotations

import platform
import sys
from enum import Enum

from termhub.errors import InvalidArgumentError


class OsFamily(str, Enum):
    WINDOWS = "windows"
    LINUX = "linux"
    OSX = "osx"
    FREEBSD = "freebsd"
    OTHER = "other"


_ALIASES = {
    "windows": OsFamily.WINDOWS,
    "win32": OsFamily.WINDOWS,
    "linux": OsFamily.LINUX,
    "osx": OsFamily.OSX,
    "macos": OsFamily.OSX,
    "darwin": OsFamily.OSX,
    "freebsd": OsFamily.FREEBSD,
}


def detect_os_family(platform_name: str | None = None) -> OsFamily:
    value = (platform_name if platform_name is not None else sys.platform).lower()
    if value.startswith(("win32", "cygwin", "msys")):
        return OsFamily.WINDOWS
    if value.startswith("linux"):
        return OsFamily.LINUX
    if value.startswith("darwin"):
        return OsFamily.OSX
    if value.startswith("freebsd"):
        return OsFamily.FREEBSD
    return OsFamily.OTHER


def describe_os() -> str:
    """Return a human readable description of the running operating system."""
    description = platform.platform()
    if description:
        return description
    return f"{platform.system()} {platform.release()}".strip()


def is_os(name: str, *, platform_name: str | None = None) -> bool:
    """Return True when ``name`` matches the host OS family.

    Matching is case-insensitive and accepts ``windows``, ``linux``,
    ``osx``/``macos``/``darwin`` and ``freebsd``. Unknown names never match.
    """
    normalized = (name or "").strip().lower()
    if not normalized:
        raise InvalidArgumentError(
            "No platform name supplied.",
            hint="Use windows, linux, osx or freebsd.",
        )
    family = _ALIASES.get(normalized)
    if family is None:
        return False
    return detect_os_family(platform_name) == family
