"""
Presence entries and presence subscriptions as resource handles.

Presence is reached through channel.presence; SDK builds without realtime
presence support fail acquisition instead of degrading silently.
"""

from __future__ import annotations

import inspect
from typing import Any, Dict, List, Optional

from ablycli.core.errors import AcquisitionError
from ablycli.core.lifecycle import Acquirer
from ablycli.core.resources import ResourceKind, acquire
from ablycli.core.router import EventRouter
from ablycli.services.ably.channels import ATTACH_TIMEOUT_SECONDS, get_channel
from ablycli.shared.events import EventRecord, create_event_record, read_field
from ablycli.shared.logging.logger import get_logger

log = get_logger("services.ably.presence")

# PresenceAction wire values
PRESENCE_ACTIONS: Dict[int, str] = {
    0: "absent",
    1: "present",
    2: "enter",
    3: "leave",
    4: "update",
}


def presence_of(channel: Any, channel_name: Optional[str] = None) -> Any:
    presence = getattr(channel, "presence", None)
    if presence is None:
        raise AcquisitionError(
            "Realtime presence is not supported by the installed Ably SDK",
            kind=ResourceKind.PRESENCE.value,
            name=channel_name,
        )
    return presence


def presence_action(value: Any) -> Optional[str]:
    if value is None:
        return None

    name = getattr(value, "name", None)
    if isinstance(name, str):
        return name.lower()

    if isinstance(value, int):
        return PRESENCE_ACTIONS.get(value, str(value))

    return str(value).lower()


async def _call(fn, *args):
    result = fn(*args)
    if inspect.isawaitable(result):
        return await result
    return result


# ------------------------------------------------------------
# Normalization
# ------------------------------------------------------------

def normalize_presence(raw: Any, channel_name: Optional[str] = None) -> EventRecord:
    client_id = read_field(raw, "client_id", "clientId")
    connection_id = read_field(raw, "connection_id", "connectionId")
    action = presence_action(read_field(raw, "action"))

    payload: Dict[str, Any] = {
        "action": action,
        "clientId": client_id,
        "connectionId": connection_id,
        "data": read_field(raw, "data"),
    }
    if channel_name:
        payload["channel"] = channel_name

    return create_event_record(
        category="presence",
        source_kind="presence",
        payload=payload,
        raw_metadata={"id": read_field(raw, "id")},
        actor_id=client_id,
        connection_id=connection_id,
        action=action,
        ts=read_field(raw, "timestamp"),
    )


def member_to_dict(member: Any) -> Dict[str, Any]:
    return {
        "clientId": read_field(member, "client_id", "clientId"),
        "connectionId": read_field(member, "connection_id", "connectionId"),
        "data": read_field(member, "data"),
    }


def members_record(
    channel_name: str,
    members: List[Dict[str, Any]],
    *,
    others_only: bool = False,
) -> EventRecord:
    return create_event_record(
        category="members",
        source_kind="members",
        payload={
            "channel": channel_name,
            "members": members,
            "count": len(members),
            "othersOnly": others_only,
        },
    )


async def fetch_members(
    realtime: Any,
    channel_name: str,
    *,
    exclude_client_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Current presence set of a channel, optionally without one client."""
    channel = get_channel(realtime, channel_name)
    presence = presence_of(channel, channel_name)

    members = await _call(presence.get) or []
    log.debug(f"Fetched {len(members)} presence member(s) on '{channel_name}'")

    result = [member_to_dict(m) for m in members]
    if exclude_client_id:
        result = [m for m in result if m["clientId"] != exclude_client_id]
    return result


# ------------------------------------------------------------
# Acquirers
# ------------------------------------------------------------

def presence_entry(
    realtime: Any,
    channel_name: str,
    *,
    data: Any = None,
    timeout: float = ATTACH_TIMEOUT_SECONDS,
) -> Acquirer:
    """
    Enter presence with data; release leaves presence.
    """

    async def _enter():
        channel = get_channel(realtime, channel_name)
        presence = presence_of(channel, channel_name)
        await _call(presence.enter, data)
        log.info(f"Entered presence on '{channel_name}'")
        return presence

    async def _leave(presence):
        await _call(presence.leave)
        log.info(f"Left presence on '{channel_name}'")

    async def _acquire():
        return await acquire(
            ResourceKind.PRESENCE,
            channel_name,
            _enter,
            _leave,
            timeout=timeout,
        )

    return _acquire


def presence_subscription(
    realtime: Any,
    router: EventRouter,
    channel_name: str,
    *,
    timeout: float = ATTACH_TIMEOUT_SECONDS,
) -> Acquirer:
    """
    Route every presence event on a channel. Presence events are
    redelivered on reattach, so the kind is deduplicated.
    """
    router.register(
        "presence",
        lambda raw: normalize_presence(raw, channel_name),
        dedupe=True,
    )
    on_presence = router.listener("presence")

    async def _subscribe():
        channel = get_channel(realtime, channel_name)
        presence = presence_of(channel, channel_name)
        await _call(presence.subscribe, on_presence)
        log.info(f"Subscribed to presence on '{channel_name}'")
        return presence

    def _unsubscribe(presence):
        presence.unsubscribe(on_presence)
        log.info(f"Unsubscribed from presence on '{channel_name}'")

    async def _acquire():
        return await acquire(
            ResourceKind.SUBSCRIPTION,
            f"{channel_name}:presence",
            _subscribe,
            _unsubscribe,
            timeout=timeout,
        )

    return _acquire


__all__ = [
    "PRESENCE_ACTIONS",
    "fetch_members",
    "member_to_dict",
    "members_record",
    "normalize_presence",
    "presence_action",
    "presence_entry",
    "presence_of",
    "presence_subscription",
]
