"""Colorized rendering of JSON-ish payload data for pretty output."""

from __future__ import annotations

import json
from typing import Any

from rich.console import RenderableType
from rich.json import JSON
from rich.text import Text


def is_json_data(data: Any) -> bool:
    """True if data is an object/array, or a string that parses as one."""
    if data is None:
        return False

    if isinstance(data, (dict, list)):
        return True

    if isinstance(data, str):
        try:
            parsed = json.loads(data)
        except ValueError:
            return False
        return isinstance(parsed, (dict, list))

    return False


def color_value(value: Any) -> Text:
    if value is None:
        return Text("null", style="bright_black")
    if isinstance(value, bool):
        return Text(str(value).lower(), style="cyan")
    if isinstance(value, (int, float)):
        return Text(str(value), style="yellow")
    if isinstance(value, str):
        return Text(f'"{value}"', style="green")
    return Text(str(value))


def format_json(data: Any) -> RenderableType:
    """
    Build a highlighted renderable for message/presence data.

    Objects and arrays (or strings holding them) are pretty printed with
    two-space indentation; scalars are colored by type.
    """
    if isinstance(data, (dict, list)):
        try:
            return JSON.from_data(data, indent=2, default=str)
        except (TypeError, ValueError):
            return Text(str(data))

    if isinstance(data, str) and is_json_data(data):
        return JSON(data, indent=2)

    if isinstance(data, bytes):
        return Text(f"<{len(data)} bytes>", style="bright_black")

    return color_value(data)


__all__ = ["is_json_data", "format_json", "color_value"]
