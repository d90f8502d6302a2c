"""Shared definitions: target platforms, the deployment error and verbosity."""

from __future__ import annotations

import enum

__all__ = ["Platform", "DeployError", "set_verbose_level", "verbose_level"]


class Platform(enum.Enum):
    """Platform a deployment targets."""

    WINDOWS = "windows"
    WINRT = "winrt"
    UNIX = "unix"
    UNKNOWN = "unknown"


class DeployError(Exception):
    """Raised when a deployment step cannot be completed."""


_verbose_level = 1


def set_verbose_level(level: int) -> None:
    """Set the verbosity: 0 silent, 1 progress, 2 normal, 3 debug."""
    global _verbose_level
    _verbose_level = int(level)


def verbose_level() -> int:
    """Return the current verbosity level."""
    return _verbose_level