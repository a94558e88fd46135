"""
Output sink for interactive commands.

The output mode is decided once, when the sink is built, and never changes
for the run. Every record goes through exactly one branch:

- JSON   : one structured object per line on stdout
- PRETTY : colorized human-readable lines (rich)
"""

from __future__ import annotations

import json
import sys
from enum import Enum
from typing import Any, Callable, Dict, Optional, TextIO

from rich.console import Console
from rich.markup import escape
from rich.text import Text

from ablycli.core.errors import ForceExitError
from ablycli.shared.events import EventRecord
from ablycli.shared.logging.logger import get_logger
from ablycli.shared.output.json_formatter import format_json, is_json_data

log = get_logger("shared.output.sink")


class OutputMode(str, Enum):
    PRETTY = "pretty"
    JSON = "json"


Renderer = Callable[[EventRecord, Console], None]

# action -> (marker, color, verb)
PRESENCE_MARKERS: Dict[str, tuple] = {
    "enter": ("✓", "green", "entered presence"),
    "present": ("•", "white", "is present"),
    "leave": ("✗", "red", "left presence"),
    "update": ("⟲", "yellow", "updated presence data"),
}


# ----------------------------------------------------------------------
# Default pretty renderers
# ----------------------------------------------------------------------

def render_message(record: EventRecord, console: Console) -> None:
    channel = escape(str(record.payload.get("channel", "")))
    name = escape(str(record.payload.get("event") or "(none)"))
    console.print(
        f"[bright_black]\\[{record.timestamp}][/] "
        f"[cyan]Channel: {channel}[/] | [yellow]Event: {name}[/]"
    )

    data = record.payload.get("data")
    if is_json_data(data):
        console.print("[blue]Data:[/]")
        console.print(format_json(data))
    else:
        console.print(Text.assemble(("Data: ", "blue"), str(data)))
    console.print("")


def render_presence(record: EventRecord, console: Console) -> None:
    action = record.action or "unknown"
    marker, color, verb = PRESENCE_MARKERS.get(action, ("•", "white", action))
    client = escape(record.actor_id or "Unknown")

    console.print(
        f"[bright_black]\\[{record.timestamp}][/] "
        f"[{color}]{marker}[/] [blue]{client}[/] {verb}"
    )

    data = record.payload.get("data")
    if data not in (None, {}, "", []):
        console.print(Text("  Data: "), format_json(data))


def render_members(record: EventRecord, console: Console) -> None:
    members = record.payload.get("members") or []
    channel = escape(str(record.payload.get("channel", "")))
    others_only = bool(record.payload.get("othersOnly"))

    if not members:
        if others_only:
            console.print("\nNo other clients are present in this channel")
        else:
            console.print(f"No members are currently present on [cyan]{channel}[/].")
        return

    if others_only:
        console.print(f"\nCurrent presence members ([cyan]{len(members)}[/] others):\n")
    else:
        console.print(f"\nCurrent presence members ([cyan]{len(members)}[/]):\n")
    for member in members:
        console.print(f"- [blue]{escape(str(member.get('clientId') or 'Unknown'))}[/]")
        data = member.get("data")
        if data not in (None, {}, "", []):
            console.print(Text("  Data: "), format_json(data))
        if member.get("connectionId"):
            console.print(
                f"  Connection ID: [dim]{escape(str(member['connectionId']))}[/]"
            )
    console.print("")


def render_connection(record: EventRecord, console: Console) -> None:
    state = record.action or "unknown"

    if state == "connected":
        console.print("Successfully connected to Ably")
    elif state == "disconnected":
        console.print("Disconnected from Ably")
    elif state == "failed":
        reason = escape(str(record.payload.get("reason") or "Unknown error"))
        console.print(f"[red]Connection failed: {reason}[/]")
    else:
        console.print(f"[dim]\\[connection][/] Connection state changed to {escape(state)}")


def render_error(record: EventRecord, console: Console) -> None:
    message = escape(str(record.payload.get("error") or "Unknown error"))
    console.print(f"[red]Error: {message}[/]")


def render_generic(record: EventRecord, console: Console) -> None:
    console.print(
        f"[bright_black]\\[{record.timestamp}][/] [bold]{escape(record.category)}[/]"
    )
    if record.payload:
        console.print(format_json(record.payload))


DEFAULT_RENDERERS: Dict[str, Renderer] = {
    "message": render_message,
    "presence": render_presence,
    "members": render_members,
    "connection": render_connection,
    "error": render_error,
}


# ----------------------------------------------------------------------
# Sink
# ----------------------------------------------------------------------

class OutputSink:
    """
    Single entry point for everything a command prints on stdout.
    """

    def __init__(
        self,
        mode: OutputMode = OutputMode.PRETTY,
        *,
        pretty_json: bool = False,
        stream: Optional[TextIO] = None,
        console: Optional[Console] = None,
    ):
        self.mode = OutputMode(mode)
        self.pretty_json = bool(pretty_json)
        self._stream = stream or sys.stdout
        self._console = console or Console(
            file=self._stream,
            highlight=False,
            soft_wrap=True,
        )
        self._renderers: Dict[str, Renderer] = dict(DEFAULT_RENDERERS)
        self.emitted = 0

    @property
    def json_mode(self) -> bool:
        return self.mode is OutputMode.JSON

    @property
    def console(self) -> Console:
        return self._console

    def register_renderer(self, category: str, renderer: Renderer) -> None:
        self._renderers[category] = renderer

    # ------------------------------------------------------------

    def _write_json(self, payload: Dict[str, Any]) -> None:
        if self.pretty_json:
            self._console.print_json(data=payload, default=str)
        else:
            self._stream.write(json.dumps(payload, default=str) + "\n")
            self._stream.flush()

    def _write_pretty(self, markup: str) -> None:
        self._console.print(markup)

    # ------------------------------------------------------------

    def emit(self, record: EventRecord) -> None:
        if self.json_mode:
            self._write_json(record.to_dict())
        else:
            renderer = self._renderers.get(record.category, render_generic)
            renderer(record, self._console)
        self.emitted += 1

    def emit_status(self, message: str, *, status: str = "info", **fields: Any) -> None:
        """
        One-shot informational result. message may carry rich markup;
        JSON output carries its plain text.
        """
        if self.json_mode:
            payload: Dict[str, Any] = {
                "success": True,
                "status": status,
                "message": Text.from_markup(message).plain.strip(),
            }
            payload.update(fields)
            self._write_json(payload)
        else:
            self._write_pretty(message)

    def emit_error(self, error: Any, **fields: Any) -> None:
        text = str(error)
        if self.json_mode:
            payload: Dict[str, Any] = {"success": False, "error": text}
            payload.update(fields)
            self._write_json(payload)
        elif isinstance(error, ForceExitError):
            self._write_pretty("[red]Force exiting after timeout...[/]")
        else:
            self._write_pretty(f"[red]Error: {escape(text)}[/]")

    def emit_terminal(self, outcome: Any) -> None:
        """Final summary once the controller reaches CLOSED."""
        if self.json_mode:
            self._write_json(outcome.to_dict())
            return

        if outcome.forced:
            return
        if outcome.success:
            self._write_pretty("[green]Connection closed[/]")
        else:
            detail = f": {escape(str(outcome.error))}" if outcome.error else ""
            self._write_pretty(f"[red]Closed with errors{detail}[/]")


__all__ = [
    "OutputMode",
    "OutputSink",
    "Renderer",
    "PRESENCE_MARKERS",
]
