"""
Metachannel subscriptions: channel occupancy and the app log stream.

Both are ordinary channel subscriptions with their own normalizers and
pretty renderers. Commands register the renderers on the sink.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.text import Text

from ablycli.core.lifecycle import Acquirer
from ablycli.core.router import EventRouter
from ablycli.services.ably.channels import (
    InboundMessage,
    channel_options,
    channel_subscription,
)
from ablycli.shared.events import EventRecord, create_event_record, read_field
from ablycli.shared.logging.logger import get_logger
from ablycli.shared.output.json_formatter import format_json, is_json_data

log = get_logger("services.ably.meta")

OCCUPANCY_EVENT = "[meta]occupancy"
LOG_CHANNEL = "[meta]log"

OCCUPANCY_FIELDS = ("connections", "publishers", "subscribers")
PRESENCE_OCCUPANCY_FIELDS = (
    ("presenceConnections", "Presence Connections"),
    ("presenceMembers", "Presence Members"),
    ("presenceSubscribers", "Presence Subscribers"),
)

# log severity -> color
SEVERITY_COLORS: Dict[str, str] = {
    "error": "red",
    "warning": "yellow",
    "info": "green",
    "debug": "blue",
}

NO_METRICS_MESSAGE = "Received occupancy update but no metrics available"


# ----------------------------------------------------------------------
# Occupancy
# ----------------------------------------------------------------------

def normalize_occupancy(inbound: InboundMessage) -> EventRecord:
    message = inbound.message
    data = read_field(message, "data")
    metrics = read_field(data, "metrics") if data is not None else None
    ts = read_field(message, "timestamp")

    if not metrics:
        log.debug(f"Occupancy update on '{inbound.channel}' carried no metrics")
        return create_event_record(
            category="error",
            source_kind="occupancy",
            payload={"channel": inbound.channel, "error": NO_METRICS_MESSAGE},
            ts=ts,
        )

    return create_event_record(
        category="occupancy",
        source_kind="occupancy",
        payload={"channel": inbound.channel, "metrics": dict(metrics)},
        raw_metadata={"id": read_field(message, "id")},
        ts=ts,
    )


def render_occupancy(record: EventRecord, console: Console) -> None:
    channel = escape(str(record.payload.get("channel", "")))
    metrics = record.payload.get("metrics") or {}

    console.print(f"\\[{record.timestamp}] Occupancy update for channel '{channel}'")
    for field in OCCUPANCY_FIELDS:
        console.print(f"  {field.capitalize()}: {metrics.get(field) or 0}")
    for key, label in PRESENCE_OCCUPANCY_FIELDS:
        if metrics.get(key) is not None:
            console.print(f"  {label}: {metrics[key]}")
    console.print("")


def occupancy_subscription(realtime: Any, router: EventRouter, channel: str) -> Acquirer:
    """Occupancy metrics for one channel, delivered as [meta]occupancy events."""
    return channel_subscription(
        realtime,
        router,
        channel,
        options=channel_options(extra_params={"occupancy": "metrics"}),
        event=OCCUPANCY_EVENT,
        source_kind="occupancy",
        normalizer=normalize_occupancy,
    )


# ----------------------------------------------------------------------
# App logs
# ----------------------------------------------------------------------

def log_severity(data: Any) -> Optional[str]:
    if isinstance(data, dict) and data.get("severity"):
        return str(data["severity"]).lower()
    return None


def normalize_log(inbound: InboundMessage) -> EventRecord:
    message = inbound.message
    event = read_field(message, "name") or "unknown"

    return create_event_record(
        category="log",
        source_kind="log",
        payload={
            "channel": inbound.channel,
            "event": event,
            "data": read_field(message, "data"),
            "encoding": read_field(message, "encoding"),
            "clientId": read_field(message, "client_id", "clientId"),
            "connectionId": read_field(message, "connection_id", "connectionId"),
            "id": read_field(message, "id"),
        },
        raw_metadata={"id": read_field(message, "id")},
        action=event,
        ts=read_field(message, "timestamp"),
    )


def render_log(record: EventRecord, console: Console) -> None:
    channel = escape(str(record.payload.get("channel", "")))
    event = escape(str(record.payload.get("event") or "unknown"))
    data = record.payload.get("data")
    color = SEVERITY_COLORS.get(log_severity(data) or "", "blue")

    console.print(
        f"[dim]\\[{record.timestamp}][/] Channel: [cyan]{channel}[/] | "
        f"Event: [{color}]{event}[/]"
    )
    if data is not None:
        if is_json_data(data):
            console.print("Data:")
            console.print(format_json(data))
        else:
            console.print(Text(f"Data: {data}"))
    console.print("")


def log_subscription(realtime: Any, router: EventRouter, *, rewind: int = 0) -> Acquirer:
    """Every event published on the app's [meta]log channel."""
    return channel_subscription(
        realtime,
        router,
        LOG_CHANNEL,
        options=channel_options(rewind=rewind),
        source_kind="log",
        normalizer=normalize_log,
    )


__all__ = [
    "LOG_CHANNEL",
    "OCCUPANCY_EVENT",
    "log_subscription",
    "normalize_log",
    "normalize_occupancy",
    "occupancy_subscription",
    "render_log",
    "render_occupancy",
]
