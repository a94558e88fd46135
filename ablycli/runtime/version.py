"""Version metadata for the ablycli package.

Import-safe; no side effects.
"""

from __future__ import annotations

PROJECT_NAME = "ablycli"
VERSION = "0.3.0"
BUILD = "2026.10"
LICENSE = "Apache-2.0"

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "BUILD",
    "LICENSE",
    "as_dict",
    "as_string",
]


def as_dict() -> dict[str, str]:
    """Return version metadata as a dictionary."""

    return {
        "project": PROJECT_NAME,
        "version": VERSION,
        "build": BUILD,
        "license": LICENSE,
    }


def as_string() -> str:
    return f"{PROJECT_NAME} {VERSION} (Build {BUILD})"
