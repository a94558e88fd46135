"""
Shared fixtures and SDK fakes.

The fakes mimic the slice of the Ably realtime SDK the adapters touch:
connection.on/off, channels.get, channel.subscribe/unsubscribe and
channel.presence.enter/leave/get/subscribe/unsubscribe.
"""

from __future__ import annotations

import argparse
import asyncio
import io
import json
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest
from rich.console import Console

from ablycli.commands.base import CommandContext
from ablycli.shared.config.cli import CliConfig, Credentials
from ablycli.shared.output import OutputMode, OutputSink


# ----------------------------------------------------------------------
# SDK fakes
# ----------------------------------------------------------------------

class FakeConnection:
    """Mirrors ably.realtime.connection.Connection: state changes are emitted
    to on() listeners and once_async() waiters, the id lives on the manager."""

    def __init__(self, journal: List[str]):
        self._journal = journal
        self.state = "initialized"
        self.error_reason: Any = None
        self.connection_manager = SimpleNamespace(connection_id=None)
        self.listeners: List[Callable] = []
        self._waiters: List[asyncio.Future] = []

    def on(self, listener):
        self.listeners.append(listener)

    def off(self, listener):
        self._journal.append("connection.off")
        self.listeners.remove(listener)

    async def once_async(self, state=None):
        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        return await future

    def emit(self, current: str, previous: str = "", reason: Any = None):
        self.state = current
        if reason is not None:
            self.error_reason = reason
        change = SimpleNamespace(current=current, previous=previous, reason=reason)
        for listener in list(self.listeners):
            listener(change)

        waiters, self._waiters = self._waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(change)


class FakePresence:
    def __init__(self, journal: List[str], members: Optional[List[Dict[str, Any]]] = None):
        self._journal = journal
        self.members = list(members or [])
        self.listeners: List[Callable] = []
        self.entered: List[Any] = []
        self.left = 0
        self.enter_error: Optional[BaseException] = None

    async def enter(self, data=None):
        if self.enter_error is not None:
            raise self.enter_error
        self._journal.append("presence.enter")
        self.entered.append(data)

    async def leave(self, data=None):
        self._journal.append("presence.leave")
        self.left += 1

    async def get(self):
        return list(self.members)

    async def subscribe(self, listener):
        self.listeners.append(listener)

    def unsubscribe(self, listener=None):
        self._journal.append("presence.unsubscribe")
        if listener in self.listeners:
            self.listeners.remove(listener)

    def deliver(self, action: str, client_id: str, connection_id: str = "conn-x", data=None, timestamp=None):
        message = {
            "action": action,
            "clientId": client_id,
            "connectionId": connection_id,
            "data": data,
            "timestamp": timestamp,
        }
        for listener in list(self.listeners):
            listener(message)


class FakeChannel:
    def __init__(self, name: str, journal: List[str], *, with_presence: bool = True):
        self.name = name
        self._journal = journal
        self.options: Optional[Dict[str, Any]] = None
        self.listeners: List[tuple] = []
        if with_presence:
            self.presence = FakePresence(journal)

    async def subscribe(self, *args):
        # (listener) or (event, listener), like RealtimeChannel.subscribe
        event, listener = (None, args[0]) if len(args) == 1 else args
        self._journal.append(f"subscribe:{self.name}")
        self.listeners.append((event, listener))

    def unsubscribe(self, *args):
        self._journal.append(f"unsubscribe:{self.name}")
        event, listener = (None, args[0]) if len(args) == 1 else args
        if (event, listener) in self.listeners:
            self.listeners.remove((event, listener))

    def deliver(self, name: Optional[str], data: Any, *, client_id: str = "other", timestamp=None):
        message = SimpleNamespace(
            name=name,
            data=data,
            encoding=None,
            client_id=client_id,
            connection_id="conn-other",
            id="msg-1",
            timestamp=timestamp,
        )
        for event, listener in list(self.listeners):
            if event is None or event == name:
                listener(message)


class FakeChannels:
    def __init__(self, journal: List[str], *, with_presence: bool = True):
        self._journal = journal
        self._with_presence = with_presence
        self.all: Dict[str, FakeChannel] = {}

    def get(self, name: str, options: Optional[Dict[str, Any]] = None):
        channel = self.all.get(name)
        if channel is None:
            channel = FakeChannel(name, self._journal, with_presence=self._with_presence)
            self.all[name] = channel
        if options:
            channel.options = options
        return channel


class FakeRealtime:
    def __init__(self, *, client_id: Optional[str] = "me", with_presence: bool = True):
        self.journal: List[str] = []
        self.connection = FakeConnection(self.journal)
        self.channels = FakeChannels(self.journal, with_presence=with_presence)
        self.auth = SimpleNamespace(client_id=client_id)
        self.connect_error: Optional[BaseException] = None
        self.closed = 0
        self.connect_calls = 0

    def connect(self):
        # Like the SDK: connect() only requests the transition, state
        # changes follow on later loop iterations.
        loop = asyncio.get_running_loop()
        self.connect_calls += 1
        loop.call_soon(self.connection.emit, "connecting", "initialized")
        if self.connect_error is not None:
            loop.call_soon(self.connection.emit, "failed", "connecting", self.connect_error)
            return
        loop.call_soon(self._connected)

    def _connected(self):
        self.connection.connection_manager.connection_id = "conn-self"
        self.connection.emit("connected", "connecting")

    async def close(self):
        self.journal.append("close")
        self.closed += 1
        self.connection.emit("closed", "closing")


# ----------------------------------------------------------------------
# Output helpers
# ----------------------------------------------------------------------

def json_sink() -> OutputSink:
    return OutputSink(OutputMode.JSON, stream=io.StringIO())


def pretty_sink() -> OutputSink:
    stream = io.StringIO()
    console = Console(file=stream, force_terminal=False, color_system=None, width=200)
    return OutputSink(OutputMode.PRETTY, stream=stream, console=console)


def output_of(sink: OutputSink) -> str:
    return sink._stream.getvalue()


def json_lines(sink: OutputSink) -> List[Dict[str, Any]]:
    return [json.loads(line) for line in output_of(sink).splitlines() if line.strip()]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------

@pytest.fixture
def realtime() -> FakeRealtime:
    return FakeRealtime()


@pytest.fixture
def exits() -> List[int]:
    return []


@pytest.fixture
def make_context(realtime, exits):
    """
    Build a CommandContext around the fake realtime client. The created
    LifecycleController is exposed as ctx.controllers[0] so tests can stop
    the run.
    """

    def _make(sink: Optional[OutputSink] = None, **arg_values) -> CommandContext:
        ctx = CommandContext(
            args=argparse.Namespace(**arg_values),
            sink=sink or json_sink(),
            config=CliConfig(),
            credentials=Credentials(api_key="app.key:secret", client_id="me", app_id="app"),
            watchdog_seconds=1.0,
            install_signal_handlers=False,
            realtime_factory=lambda _credentials: realtime,
            force_exit=exits.append,
        )

        controllers = []
        build = ctx.controller

        def _capture():
            controller = build()
            controllers.append(controller)
            return controller

        ctx.controller = _capture
        ctx.controllers = controllers
        return ctx

    return _make
