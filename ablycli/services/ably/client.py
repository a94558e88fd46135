"""
Realtime client construction and connection-level resources.

The Ably SDK owns the connection state machine; this module only turns
"connect" and "listen for state changes" into resource handles.
"""

from __future__ import annotations

import inspect
from typing import Any, Dict, Optional

from ably import AblyRealtime

from ablycli.core.lifecycle import Acquirer
from ablycli.core.resources import ResourceKind, acquire
from ablycli.core.router import EventRouter
from ablycli.shared.config.cli import Credentials
from ablycli.shared.events import EventRecord, create_event_record, enum_value, read_field
from ablycli.shared.logging.logger import get_logger

log = get_logger("services.ably.client")

CONNECT_TIMEOUT_SECONDS = 15.0

FATAL_CONNECTION_STATES = {"failed"}

# States that end a connect attempt without reaching "connected"
CONNECT_ABORT_STATES = {"failed", "suspended", "closed"}


def build_realtime(credentials: Credentials, **overrides: Any) -> AblyRealtime:
    """
    Create an AblyRealtime client without connecting; connecting is an
    acquisition owned by the lifecycle controller.
    """
    credentials.require_realtime_auth()

    options: Dict[str, Any] = {"auto_connect": False}

    if credentials.token:
        # The client id is embedded in the token
        options["token"] = credentials.token
        if credentials.client_id:
            log.debug("clientId ignored with token authentication")
    else:
        options["key"] = credentials.api_key
        if credentials.client_id:
            options["client_id"] = credentials.client_id

    options.update(overrides)
    return AblyRealtime(**options)


def client_identity(realtime: Any) -> Optional[str]:
    auth = getattr(realtime, "auth", None)
    return getattr(auth, "client_id", None) if auth is not None else None


def connection_identity(realtime: Any) -> Optional[str]:
    """The connection id is tracked by the connection manager, not the connection."""
    manager = getattr(realtime.connection, "connection_manager", None)
    return getattr(manager, "connection_id", None) if manager is not None else None


async def wait_until_connected(connection: Any) -> None:
    """
    Wait for the "connected" state after connect() was requested.

    The current state is re-read after every change so transitions that
    fire before this coroutine resumes are not missed.
    """
    while True:
        state = enum_value(connection.state)
        if state == "connected":
            return
        if state in CONNECT_ABORT_STATES:
            reason = getattr(connection, "error_reason", None)
            message = getattr(reason, "message", None) or reason
            raise ConnectionError(str(message) if message else f"Connection {state}")
        await connection.once_async()


# ------------------------------------------------------------
# Connection state changes
# ------------------------------------------------------------

def normalize_connection_change(change: Any) -> EventRecord:
    current = enum_value(read_field(change, "current"))
    previous = enum_value(read_field(change, "previous"))
    reason = read_field(change, "reason")

    payload: Dict[str, Any] = {"status": current, "previous": previous}
    if reason is not None:
        payload["reason"] = str(getattr(reason, "message", reason))

    return create_event_record(
        category="connection",
        source_kind="connection",
        payload=payload,
        action=current,
        fatal=current in FATAL_CONNECTION_STATES,
    )


def connection_listener(realtime: Any, router: EventRouter) -> Acquirer:
    """
    Route every connection state change; the 'failed' state is fatal.
    Acquire before the connection so 'connected' is observed.
    """
    router.register("connection", normalize_connection_change)
    listener = router.listener("connection")

    async def _acquire():
        return await acquire(
            ResourceKind.SUBSCRIPTION,
            "connection-state",
            lambda: realtime.connection.on(listener),
            lambda _: realtime.connection.off(listener),
        )

    return _acquire


def realtime_connection(
    realtime: Any,
    router: Optional[EventRouter] = None,
    *,
    timeout: float = CONNECT_TIMEOUT_SECONDS,
) -> Acquirer:
    """
    Connect and wait for the connected state; release closes the client.
    Once connected, the connection id joins the router's self identities.
    """

    async def _connect():
        realtime.connect()
        await wait_until_connected(realtime.connection)

        connection_id = connection_identity(realtime)
        if router is not None:
            router.add_self_identity(connection_id)
        log.info(f"Connected to Ably (connection id={connection_id})")
        return realtime

    async def _close(client):
        result = client.close()
        if inspect.isawaitable(result):
            await result
        log.info("Ably connection closed")

    async def _acquire():
        return await acquire(
            ResourceKind.CONNECTION,
            "realtime",
            _connect,
            _close,
            timeout=timeout,
        )

    return _acquire


__all__ = [
    "build_realtime",
    "client_identity",
    "connection_identity",
    "wait_until_connected",
    "connection_listener",
    "realtime_connection",
    "normalize_connection_change",
    "CONNECT_TIMEOUT_SECONDS",
]
