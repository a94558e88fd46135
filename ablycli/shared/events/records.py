"""Normalized inbound event records and helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

TimestampLike = Union[str, int, float, datetime, None]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _to_utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_timestamp(ts: TimestampLike) -> str:
    """
    Resolve an event-provided timestamp to ISO-8601 UTC with a Z suffix.

    Accepts epoch milliseconds (the SDK convention), epoch seconds,
    ISO strings and datetimes. Anything unparseable falls back to now.
    """
    if ts is None or ts == "":
        return _utc_now_iso()

    if isinstance(ts, bool):
        return _utc_now_iso()

    if isinstance(ts, datetime):
        return _to_utc_iso(ts)

    if isinstance(ts, (int, float)):
        v = float(ts)
        # ms timestamps are > 1e12
        if v > 1_000_000_000_000:
            v = v / 1000.0
        try:
            return _to_utc_iso(datetime.fromtimestamp(v, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return _utc_now_iso()

    if isinstance(ts, str):
        try:
            parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            return _utc_now_iso()
        return _to_utc_iso(parsed)

    return _utc_now_iso()


def read_field(raw: Any, *names: str, default: Any = None) -> Any:
    """
    Read the first present attribute/key among names.

    SDK objects expose snake_case attributes while REST payloads and
    test fixtures use camelCase dict keys; callers list both.
    """
    for name in names:
        if isinstance(raw, dict):
            if name in raw and raw[name] is not None:
                return raw[name]
        else:
            value = getattr(raw, name, None)
            if value is not None:
                return value
    return default


def enum_value(value: Any) -> Any:
    """Unwrap SDK enums (PresenceAction, ConnectionState) to plain values."""
    inner = getattr(value, "value", value)
    if isinstance(inner, str):
        return inner.lower()
    return inner


@dataclass
class EventRecord:
    timestamp: str
    category: str
    payload: Dict[str, Any] = field(default_factory=dict)
    raw_metadata: Dict[str, Any] = field(default_factory=dict)

    # Routing attributes (not rendered as payload)
    source_kind: str = ""
    actor_id: Optional[str] = None
    connection_id: Optional[str] = None
    action: Optional[str] = None
    fatal: bool = False

    @property
    def is_error(self) -> bool:
        return self.category == "error" or self.fatal

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": not self.is_error,
            "timestamp": self.timestamp,
            "category": self.category,
        }
        payload.update(self.payload)
        return payload


def create_event_record(
    *,
    category: str,
    source_kind: str,
    payload: Optional[Dict[str, Any]] = None,
    raw_metadata: Optional[Dict[str, Any]] = None,
    actor_id: Optional[str] = None,
    connection_id: Optional[str] = None,
    action: Optional[str] = None,
    ts: TimestampLike = None,
    fatal: bool = False,
) -> EventRecord:
    if not category:
        raise ValueError("category is required")

    return EventRecord(
        timestamp=normalize_timestamp(ts),
        category=str(category),
        payload=dict(payload or {}),
        raw_metadata=dict(raw_metadata or {}),
        source_kind=str(source_kind or category),
        actor_id=str(actor_id) if actor_id is not None else None,
        connection_id=str(connection_id) if connection_id is not None else None,
        action=str(action) if action is not None else None,
        fatal=bool(fatal),
    )


def generic_normalizer(source_kind: str, raw: Any) -> EventRecord:
    """
    Best-effort normalization for unregistered sources.

    Reads client/connection identity, action and timestamp from either
    an SDK object or a plain dict.
    """
    client_id = read_field(raw, "client_id", "clientId")
    connection_id = read_field(raw, "connection_id", "connectionId")
    action = enum_value(read_field(raw, "action", "name"))
    data = read_field(raw, "data")

    payload: Dict[str, Any] = {}
    if action is not None:
        payload["action"] = action
    if client_id is not None:
        payload["clientId"] = client_id
    if data is not None:
        payload["data"] = data

    return create_event_record(
        category=source_kind,
        source_kind=source_kind,
        payload=payload,
        raw_metadata={"id": read_field(raw, "id")},
        actor_id=client_id,
        connection_id=connection_id,
        action=action,
        ts=read_field(raw, "timestamp"),
    )


__all__ = [
    "EventRecord",
    "create_event_record",
    "generic_normalizer",
    "normalize_timestamp",
    "read_field",
    "enum_value",
]
