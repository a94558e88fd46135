"""Channel message subscriptions as resource handles."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from ablycli.core.lifecycle import Acquirer
from ablycli.core.resources import ResourceKind, acquire
from ablycli.core.router import EventRouter
from ablycli.shared.events import EventRecord, create_event_record, read_field
from ablycli.shared.logging.logger import get_logger

log = get_logger("services.ably.channels")

ATTACH_TIMEOUT_SECONDS = 15.0


@dataclass
class InboundMessage:
    """A message paired with the channel it arrived on."""

    channel: str
    message: Any


def channel_options(
    *,
    rewind: int = 0,
    delta: bool = False,
    cipher_key: Optional[str] = None,
    cipher_algorithm: str = "aes",
    cipher_mode: str = "cbc",
    extra_params: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Build channel options from subscribe flags. Empty when no option is set.
    """
    options: Dict[str, Any] = {}
    params: Dict[str, str] = dict(extra_params or {})

    if cipher_key:
        options["cipher"] = {
            "key": cipher_key,
            "algorithm": cipher_algorithm,
            "mode": cipher_mode,
        }

    if delta:
        params["delta"] = "vcdiff"

    if rewind and rewind > 0:
        params["rewind"] = str(rewind)

    if params:
        options["params"] = params

    return options


def get_channel(realtime: Any, name: str, options: Optional[Dict[str, Any]] = None) -> Any:
    if options:
        return realtime.channels.get(name, options)
    return realtime.channels.get(name)


def normalize_message(inbound: InboundMessage) -> EventRecord:
    message = inbound.message
    name = read_field(message, "name")

    return create_event_record(
        category="message",
        source_kind="message",
        payload={
            "channel": inbound.channel,
            "event": name or "(none)",
            "data": read_field(message, "data"),
            "encoding": read_field(message, "encoding"),
            "clientId": read_field(message, "client_id", "clientId"),
            "connectionId": read_field(message, "connection_id", "connectionId"),
            "id": read_field(message, "id"),
        },
        raw_metadata={"id": read_field(message, "id")},
        actor_id=read_field(message, "client_id", "clientId"),
        connection_id=read_field(message, "connection_id", "connectionId"),
        action=name,
        ts=read_field(message, "timestamp"),
    )


def channel_subscription(
    realtime: Any,
    router: EventRouter,
    name: str,
    *,
    options: Optional[Dict[str, Any]] = None,
    timeout: float = ATTACH_TIMEOUT_SECONDS,
    event: Optional[str] = None,
    source_kind: str = "message",
    normalizer: Callable[[InboundMessage], EventRecord] = normalize_message,
) -> Acquirer:
    """
    Subscribe to messages on a channel, or only to the named event when
    event is given. The subscription attaches the channel; release
    unsubscribes the listener.
    """
    router.register(source_kind, normalizer)
    listen_args: Tuple[Any, ...] = (event,) if event else ()

    def on_message(message: Any) -> None:
        router.on_event(source_kind, InboundMessage(channel=name, message=message))

    async def _setup():
        channel = get_channel(realtime, name, options)
        await channel.subscribe(*listen_args, on_message)
        log.info(f"Subscribed to channel '{name}'" + (f" (event '{event}')" if event else ""))
        return channel

    def _teardown(channel):
        channel.unsubscribe(*listen_args, on_message)
        log.info(f"Unsubscribed from channel '{name}'")

    async def _acquire():
        return await acquire(
            ResourceKind.SUBSCRIPTION,
            name,
            _setup,
            _teardown,
            timeout=timeout,
        )

    return _acquire


__all__ = [
    "InboundMessage",
    "channel_options",
    "channel_subscription",
    "get_channel",
    "normalize_message",
]
