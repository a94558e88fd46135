"""
Shared wiring for interactive commands.

Every long-running command follows the same shape:

    sink (mode fixed once) -> router -> acquirers -> LifecycleController.run()

Commands only describe WHAT to acquire and how to render it; teardown,
signal handling and exit codes belong to the controller.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence

from ablycli.core.errors import AblyCliError, AcquisitionError
from ablycli.core.lifecycle import (
    DEFAULT_WATCHDOG_SECONDS,
    Acquirer,
    LifecycleConfig,
    LifecycleController,
)
from ablycli.core.router import EventRouter
from ablycli.services.ably.client import build_realtime
from ablycli.shared.config.cli import (
    CliConfig,
    CliConfigLoader,
    Credentials,
    resolve_credentials,
)
from ablycli.shared.logging.logger import get_logger
from ablycli.shared.output import OutputMode, OutputSink

log = get_logger("commands.base")

RealtimeFactory = Callable[[Credentials], Any]


@dataclass
class CommandContext:
    """Everything a command handler needs, resolved once per invocation."""

    args: argparse.Namespace
    sink: OutputSink
    config: CliConfig
    credentials: Credentials
    watchdog_seconds: float = DEFAULT_WATCHDOG_SECONDS
    dedupe_window: float = 0.5
    install_signal_handlers: bool = True
    realtime_factory: RealtimeFactory = build_realtime
    force_exit: Optional[Callable[[int], None]] = None

    @property
    def json_mode(self) -> bool:
        return self.sink.json_mode

    def realtime(self) -> Any:
        return self.realtime_factory(self.credentials)

    def router(self, *, self_identities: Iterable[Optional[str]] = ()) -> EventRouter:
        return EventRouter(
            self.sink,
            self_identities=self_identities,
            dedupe_window=self.dedupe_window,
        )

    def controller(self) -> LifecycleController:
        if self.force_exit is not None:
            return LifecycleController(self.sink, force_exit=self.force_exit)
        return LifecycleController(self.sink)


def build_sink(args: argparse.Namespace) -> OutputSink:
    pretty_json = bool(getattr(args, "pretty_json", False))
    json_mode = bool(getattr(args, "json", False)) or pretty_json
    return OutputSink(
        OutputMode.JSON if json_mode else OutputMode.PRETTY,
        pretty_json=pretty_json,
    )


def build_context(
    args: argparse.Namespace,
    *,
    sink: Optional[OutputSink] = None,
    loader: Optional[CliConfigLoader] = None,
    env: Optional[Mapping[str, str]] = None,
    app_id: Optional[str] = None,
) -> CommandContext:
    config = (loader or CliConfigLoader()).load()

    credentials = resolve_credentials(
        config,
        api_key=getattr(args, "api_key", None),
        token=getattr(args, "token", None),
        access_token=getattr(args, "access_token", None),
        client_id=getattr(args, "client_id", None),
        app_id=app_id,
        control_host=getattr(args, "control_host", None),
        env=env,
    )

    watchdog = getattr(args, "watchdog_seconds", None)
    return CommandContext(
        args=args,
        sink=sink or build_sink(args),
        config=config,
        credentials=credentials,
        watchdog_seconds=(
            float(watchdog) if watchdog else config.settings.watchdog_seconds
        ),
        dedupe_window=config.settings.dedupe_window_ms / 1000.0,
    )


async def run_lifecycle(
    ctx: CommandContext,
    router: EventRouter,
    acquirers: Sequence[Acquirer],
    *,
    on_active: Optional[Callable[[LifecycleController], Awaitable[None]]] = None,
) -> int:
    """
    Run the controller over the given acquirers and return the exit code.

    on_active runs once every handle is acquired (e.g. to print the
    current presence set) and before the run blocks for termination.
    """
    controller = ctx.controller()
    router.set_fatal_handler(controller.fail)

    config = LifecycleConfig(
        acquirers=list(acquirers),
        watchdog_seconds=ctx.watchdog_seconds,
        install_signal_handlers=ctx.install_signal_handlers,
    )

    try:
        await controller.start(config)
    except AcquisitionError as e:
        ctx.sink.emit_error(e)
        return e.exit_code

    if on_active is not None:
        try:
            await on_active(controller)
        except Exception as e:
            log.error(f"Post-acquisition step failed: {e}")
            controller.fail(e)

    return await controller.finish()


async def execute(
    handler: Callable[[CommandContext], Awaitable[int]],
    ctx: CommandContext,
) -> int:
    """
    Invoke a command handler; AblyCliError is reported through the sink,
    anything else propagates.
    """
    try:
        return await handler(ctx)
    except AblyCliError as e:
        log.debug(f"Command failed: {e!r}")
        ctx.sink.emit_error(e)
        return e.exit_code


__all__ = [
    "CommandContext",
    "build_context",
    "build_sink",
    "execute",
    "run_lifecycle",
]
