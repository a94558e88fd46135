"""
ably apps stats [APP_ID] [--live]
ably accounts stats [--live]
ably connections stats [--live]
"""

from __future__ import annotations

import functools
import time
from typing import Any, Callable, Optional

from rich.markup import escape

from ablycli.commands.base import CommandContext, run_lifecycle
from ablycli.core.errors import ConfigError
from ablycli.core.resources import ResourceKind, acquire
from ablycli.services.ably.rest import RestStats, build_rest
from ablycli.services.control.api import ControlApi
from ablycli.services.stats.display import StatsDisplay, render_stats_interval
from ablycli.services.stats.poller import StatsPoller, normalize_stats, stats_timer
from ablycli.shared.logging.logger import get_logger

log = get_logger("commands.stats")

ONE_SHOT_LOOKBACK_MS = 24 * 60 * 60 * 1000

ApiFactory = Callable[[CommandContext], ControlApi]
RestFactory = Callable[[CommandContext], RestStats]


def default_api_factory(ctx: CommandContext) -> ControlApi:
    return ControlApi(
        ctx.credentials.require_access_token(),
        control_host=ctx.credentials.control_host,
    )


def default_rest_factory(ctx: CommandContext) -> RestStats:
    return RestStats(build_rest(ctx.credentials))


def stats_client(api: Any, name: str = "control-api"):
    """The stats HTTP client as a CONNECTION handle; release closes it."""

    async def _acquire():
        return await acquire(
            ResourceKind.CONNECTION,
            name,
            lambda: api,
            lambda client: client.aclose(),
        )

    return _acquire


async def _run_live(
    ctx: CommandContext,
    api: Any,
    fetch,
    *,
    account: bool,
    label: str,
    client_name: str = "control-api",
) -> int:
    args = ctx.args
    router = ctx.router()

    display = StatsDisplay(live=True, account=account, interval=args.interval)
    ctx.sink.register_renderer("stats", display.render)

    poller = StatsPoller(fetch, router, interval=args.interval, unit=args.unit)

    ctx.sink.emit_status(
        f"Subscribing to live stats for {label}...",
        status="subscribing",
    )

    return await run_lifecycle(
        ctx,
        router,
        [stats_client(api, client_name), stats_timer(poller)],
    )


async def _run_once(
    ctx: CommandContext,
    api: Any,
    fetch,
    *,
    label: str,
    empty_message: str = "No stats found for the specified period",
) -> int:
    args = ctx.args

    start, end = args.start, args.end
    if not start and not end:
        end = int(time.time() * 1000)
        start = end - ONE_SHOT_LOOKBACK_MS

    try:
        if not ctx.json_mode:
            ctx.sink.emit_status(f"Fetching stats for {label}...")

        stats = await fetch(start=start, end=end, unit=args.unit, limit=args.limit)
    finally:
        await api.aclose()

    if not stats:
        ctx.sink.emit_status(empty_message, status="empty")
        return 0

    ctx.sink.register_renderer("stats", render_stats_interval)
    if not ctx.json_mode:
        ctx.sink.emit_status(f"\nStats for {label}:\n")

    for raw in stats:
        ctx.sink.emit(normalize_stats(raw))
    return 0


async def app_stats(ctx: CommandContext, *, api_factory: ApiFactory = default_api_factory) -> int:
    args = ctx.args
    app_id: Optional[str] = args.app_id or ctx.credentials.app_id
    if not app_id:
        raise ConfigError(
            "No app ID provided and no default app selected. "
            "Please specify an app ID or set ABLY_APP_ID."
        )

    api = api_factory(ctx)
    fetch: Any = functools.partial(api.get_app_stats, app_id)
    label = f"app [cyan]{escape(app_id)}[/]"

    if args.live:
        return await _run_live(ctx, api, fetch, account=False, label=label)
    return await _run_once(ctx, api, fetch, label=label)


async def account_stats(ctx: CommandContext, *, api_factory: ApiFactory = default_api_factory) -> int:
    args = ctx.args
    api = api_factory(ctx)
    account = ctx.config.account()
    name = account.account_name if account and account.account_name else "current account"
    label = f"account [cyan]{escape(name)}[/]"

    if args.live:
        return await _run_live(ctx, api, api.get_account_stats, account=True, label=label)
    return await _run_once(ctx, api, api.get_account_stats, label=label)


async def connection_stats(ctx: CommandContext, *, rest_factory: RestFactory = default_rest_factory) -> int:
    """
    App stats through the REST API with the app key (no access token).
    Live mode polls minute intervals only.
    """
    args = ctx.args
    if args.live and args.unit != "minute":
        log.warning("Live stats only support minute intervals. Using minute interval.")
        args.unit = "minute"

    rest = rest_factory(ctx)
    label = "connections"

    if args.live:
        return await _run_live(
            ctx, rest, rest.get_stats, account=False, label=label, client_name="ably-rest"
        )
    return await _run_once(
        ctx,
        rest,
        rest.get_stats,
        label=label,
        empty_message="No connection stats available.",
    )


__all__ = ["account_stats", "app_stats", "connection_stats", "stats_client"]
