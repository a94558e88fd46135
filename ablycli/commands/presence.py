"""
ably channels presence enter CHANNEL
ably channels presence subscribe CHANNEL
"""

from __future__ import annotations

import json
from typing import Any

from rich.markup import escape

from ablycli.commands.base import CommandContext, run_lifecycle
from ablycli.core.errors import UsageError
from ablycli.services.ably.client import (
    client_identity,
    connection_listener,
    realtime_connection,
)
from ablycli.services.ably.presence import (
    fetch_members,
    members_record,
    presence_entry,
    presence_subscription,
)
from ablycli.shared.logging.logger import get_logger

log = get_logger("commands.presence")


def parse_presence_data(raw: str) -> Any:
    try:
        return json.loads(raw) if raw else {}
    except ValueError as e:
        raise UsageError(
            "Invalid JSON data format. Please provide a valid JSON string."
        ) from e


async def enter(ctx: CommandContext) -> int:
    """
    Enter presence and stay present until terminated. With --show-others
    the current members and other clients' presence events are shown;
    this client's own events are filtered out.
    """
    args = ctx.args
    channel = args.channel
    data = parse_presence_data(args.data)

    realtime = ctx.realtime()
    client_id = ctx.credentials.client_id or client_identity(realtime)
    router = ctx.router(self_identities=[client_id])

    acquirers = [
        connection_listener(realtime, router),
        realtime_connection(realtime, router),
    ]
    if args.show_others:
        acquirers.append(presence_subscription(realtime, router, channel))
    acquirers.append(presence_entry(realtime, channel, data=data))

    async def _after_enter(_controller):
        who = client_id or client_identity(realtime) or "Unknown"
        ctx.sink.emit_status(
            f"[green]✓[/] Entered presence on channel [cyan]{escape(channel)}[/] "
            f"as [blue]{escape(who)}[/]",
            status="entered",
            channel=channel,
            clientId=who,
            data=data,
        )

        if not args.show_others:
            ctx.sink.emit_status(
                "\nStaying present until terminated. Press Ctrl+C to exit.",
                status="present",
            )
            return

        others = await fetch_members(realtime, channel, exclude_client_id=who)
        router.on_event("members", members_record(channel, others, others_only=True))
        ctx.sink.emit_status(
            "\nListening for presence events until terminated. Press Ctrl+C to exit.",
            status="listening",
        )

    return await run_lifecycle(ctx, router, acquirers, on_active=_after_enter)


async def subscribe(ctx: CommandContext) -> int:
    """
    Print the current presence set, then stream enter/leave/update events
    until terminated.
    """
    channel = ctx.args.channel

    realtime = ctx.realtime()
    router = ctx.router()

    acquirers = [
        connection_listener(realtime, router),
        realtime_connection(realtime),
        presence_subscription(realtime, router, channel),
    ]

    async def _show_members(_controller):
        members = await fetch_members(realtime, channel)
        router.on_event("members", members_record(channel, members))
        ctx.sink.emit_status(
            "\nSubscribing to presence events. Press Ctrl+C to exit.\n",
            status="subscribed",
            channel=channel,
        )

    return await run_lifecycle(ctx, router, acquirers, on_active=_show_members)


__all__ = ["enter", "parse_presence_data", "subscribe"]
