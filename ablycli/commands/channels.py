"""
ably channels subscribe CHANNEL [CHANNEL...]
ably channels occupancy subscribe CHANNEL
"""

from __future__ import annotations

from ablycli.commands.base import CommandContext, run_lifecycle
from ablycli.services.ably.channels import channel_options, channel_subscription
from ablycli.services.ably.client import connection_listener, realtime_connection
from ablycli.services.ably.meta import occupancy_subscription, render_occupancy
from ablycli.shared.logging.logger import get_logger

log = get_logger("commands.channels")


async def subscribe(ctx: CommandContext) -> int:
    """
    Subscribe to one or more channels and print every message until
    terminated. Own messages are shown; nothing is filtered.
    """
    args = ctx.args
    channels = list(args.channels)

    options = channel_options(
        rewind=args.rewind or 0,
        delta=bool(args.delta),
        cipher_key=args.cipher_key,
    )

    realtime = ctx.realtime()
    router = ctx.router()

    acquirers = [
        connection_listener(realtime, router),
        realtime_connection(realtime),
    ]
    acquirers.extend(
        channel_subscription(realtime, router, name, options=options)
        for name in channels
    )

    names = ", ".join(f"[cyan]{name}[/]" for name in channels)

    async def _announce(_controller):
        ctx.sink.emit_status(
            f"Subscribed to channel(s): {names}. "
            f"Listening for messages. Press Ctrl+C to exit.",
            status="subscribed",
            channels=channels,
        )

    log.debug(f"Subscribing to {len(channels)} channel(s) with options={options}")
    return await run_lifecycle(ctx, router, acquirers, on_active=_announce)


async def occupancy_subscribe(ctx: CommandContext) -> int:
    """Stream occupancy metrics for one channel until terminated."""
    channel = ctx.args.channel

    realtime = ctx.realtime()
    router = ctx.router()
    ctx.sink.register_renderer("occupancy", render_occupancy)

    acquirers = [
        connection_listener(realtime, router),
        realtime_connection(realtime),
        occupancy_subscription(realtime, router, channel),
    ]

    async def _announce(_controller):
        ctx.sink.emit_status(
            f"Subscribed to occupancy on channel: [cyan]{channel}[/]. "
            f"Listening for occupancy updates. Press Ctrl+C to exit.",
            status="subscribed",
            channel=channel,
        )

    return await run_lifecycle(ctx, router, acquirers, on_active=_announce)


__all__ = ["occupancy_subscribe", "subscribe"]
