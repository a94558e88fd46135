"""ably logs app subscribe [--rewind N]"""

from __future__ import annotations

from rich.markup import escape

from ablycli.commands.base import CommandContext, run_lifecycle
from ablycli.services.ably.client import connection_listener, realtime_connection
from ablycli.services.ably.meta import LOG_CHANNEL, log_subscription, render_log
from ablycli.shared.logging.logger import get_logger

log = get_logger("commands.logs")


async def app_subscribe(ctx: CommandContext) -> int:
    rewind = ctx.args.rewind or 0

    realtime = ctx.realtime()
    router = ctx.router()
    ctx.sink.register_renderer("log", render_log)

    acquirers = [
        connection_listener(realtime, router),
        realtime_connection(realtime),
        log_subscription(realtime, router, rewind=rewind),
    ]

    async def _announce(_controller):
        ctx.sink.emit_status(
            f"Subscribed to [cyan]{escape(LOG_CHANNEL)}[/]. Press Ctrl+C to exit.",
            status="subscribed",
            channel=LOG_CHANNEL,
        )

    if rewind:
        log.debug(f"Rewinding {rewind} app log message(s)")
    return await run_lifecycle(ctx, router, acquirers, on_active=_announce)


__all__ = ["app_subscribe"]
