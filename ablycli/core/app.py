from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from dotenv import load_dotenv

from ablycli.commands import channels, logs, presence, stats
from ablycli.commands.base import CommandContext, build_context, build_sink, execute
from ablycli.core.lifecycle import DEFAULT_WATCHDOG_SECONDS
from ablycli.runtime.version import as_string
from ablycli.services.stats.poller import DEFAULT_POLL_INTERVAL, STATS_UNITS
from ablycli.shared.logging.logger import get_logger, set_console_level
from ablycli.shared.utils.string_distance import closest_command, levenshtein_distance

log = get_logger("core.app")

Handler = Callable[[CommandContext], Awaitable[int]]

EXIT_USAGE = 2

# command path -> handler
COMMANDS: Dict[str, Handler] = {
    "channels subscribe": channels.subscribe,
    "channels presence enter": presence.enter,
    "channels presence subscribe": presence.subscribe,
    "channels occupancy subscribe": channels.occupancy_subscribe,
    "logs app subscribe": logs.app_subscribe,
    "connections stats": stats.connection_stats,
    "apps stats": stats.app_stats,
    "accounts stats": stats.account_stats,
}

# Global options that consume the following token
_VALUE_FLAGS = {
    "--api-key",
    "--token",
    "--access-token",
    "--client-id",
    "--control-host",
    "--watchdog-seconds",
    "--rewind",
    "--cipher-key",
    "--data",
    "--unit",
    "--interval",
    "--limit",
    "--start",
    "--end",
}


# ----------------------------------------------------------------------
# PARSER
# ----------------------------------------------------------------------

def _add_global_flags(parser: argparse.ArgumentParser, *, suppress: bool) -> None:
    """
    Global flags are accepted before or after the command. Leaf parsers
    use SUPPRESS defaults so they never overwrite values given earlier.
    """

    def default(value):
        return argparse.SUPPRESS if suppress else value

    parser.add_argument("--api-key", default=default(None), help="Ably API key (APP.KEY:SECRET)")
    parser.add_argument("--token", default=default(None), help="Ably token for realtime auth")
    parser.add_argument("--access-token", default=default(None), help="Control API access token")
    parser.add_argument(
        "--client-id",
        default=default(None),
        help='Client id to use; "none" to connect without one',
    )
    parser.add_argument("--control-host", default=default(None), help="Control API host")
    parser.add_argument("--json", action="store_true", default=default(False), help="Output as JSON")
    parser.add_argument(
        "--pretty-json",
        action="store_true",
        default=default(False),
        help="Output as indented, colorized JSON",
    )
    parser.add_argument("--verbose", "-v", action="store_true", default=default(False), help="Debug logging on stderr")
    parser.add_argument(
        "--watchdog-seconds",
        type=float,
        default=default(None),
        help=f"Seconds to wait for cleanup before forcing exit (default {DEFAULT_WATCHDOG_SECONDS:g})",
    )


def _add_stats_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", type=int, help="Start time in milliseconds since epoch")
    parser.add_argument("--end", type=int, help="End time in milliseconds since epoch")
    parser.add_argument("--unit", choices=STATS_UNITS, default="minute", help="Time unit for stats")
    parser.add_argument("--limit", type=int, default=10, help="Maximum number of stats records")
    parser.add_argument("--live", action="store_true", help="Poll for live stats until terminated")
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help="Polling interval in seconds (only used with --live)",
    )


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    _add_global_flags(common, suppress=True)

    parser = argparse.ArgumentParser(prog="ably", description="Ably command-line interface")
    parser.add_argument("--version", action="version", version=as_string())
    _add_global_flags(parser, suppress=False)

    topics = parser.add_subparsers(dest="topic", metavar="<topic>")
    topics.required = True

    # --------------------------------------------------
    # channels
    # --------------------------------------------------
    p_channels = topics.add_parser("channels", help="Channel commands")
    channel_cmds = p_channels.add_subparsers(dest="command", metavar="<command>")
    channel_cmds.required = True

    p_sub = channel_cmds.add_parser(
        "subscribe", parents=[common], help="Subscribe to messages on one or more channels"
    )
    p_sub.add_argument("channels", nargs="+", metavar="CHANNEL")
    p_sub.add_argument("--rewind", type=int, default=0, help="Number of messages to rewind on attach")
    p_sub.add_argument("--delta", action="store_true", help="Enable vcdiff delta compression")
    p_sub.add_argument("--cipher-key", help="Base64-encoded AES key (128 or 256 bit) for encrypted messages")
    p_sub.set_defaults(command_path="channels subscribe")

    p_presence = channel_cmds.add_parser("presence", help="Presence commands")
    presence_cmds = p_presence.add_subparsers(dest="presence_command", metavar="<command>")
    presence_cmds.required = True

    p_enter = presence_cmds.add_parser(
        "enter", parents=[common], help="Enter presence and remain present until terminated"
    )
    p_enter.add_argument("channel", metavar="CHANNEL")
    p_enter.add_argument("--data", default="{}", help="Presence data (JSON string)")
    p_enter.add_argument(
        "--show-others",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Show other clients' presence events while present",
    )
    p_enter.set_defaults(command_path="channels presence enter")

    p_psub = presence_cmds.add_parser(
        "subscribe", parents=[common], help="Subscribe to presence events on a channel"
    )
    p_psub.add_argument("channel", metavar="CHANNEL")
    p_psub.set_defaults(command_path="channels presence subscribe")

    p_occupancy = channel_cmds.add_parser("occupancy", help="Channel occupancy commands")
    occupancy_cmds = p_occupancy.add_subparsers(dest="occupancy_command", metavar="<command>")
    occupancy_cmds.required = True

    p_osub = occupancy_cmds.add_parser(
        "subscribe", parents=[common], help="Subscribe to occupancy metrics for a channel"
    )
    p_osub.add_argument("channel", metavar="CHANNEL")
    p_osub.set_defaults(command_path="channels occupancy subscribe")

    # --------------------------------------------------
    # logs
    # --------------------------------------------------
    p_logs = topics.add_parser("logs", help="Log streaming commands")
    log_cmds = p_logs.add_subparsers(dest="command", metavar="<command>")
    log_cmds.required = True

    p_log_app = log_cmds.add_parser("app", help="App log commands")
    log_app_cmds = p_log_app.add_subparsers(dest="log_command", metavar="<command>")
    log_app_cmds.required = True

    p_log_sub = log_app_cmds.add_parser(
        "subscribe", parents=[common], help="Stream logs from the app-wide [meta]log channel"
    )
    p_log_sub.add_argument("--rewind", type=int, default=0, help="Number of messages to rewind when subscribing")
    p_log_sub.set_defaults(command_path="logs app subscribe")

    # --------------------------------------------------
    # apps / accounts
    # --------------------------------------------------
    p_apps = topics.add_parser("apps", help="App commands")
    app_cmds = p_apps.add_subparsers(dest="command", metavar="<command>")
    app_cmds.required = True

    p_app_stats = app_cmds.add_parser("stats", parents=[common], help="Get app stats")
    p_app_stats.add_argument("app_id", nargs="?", metavar="APP_ID")
    _add_stats_flags(p_app_stats)
    p_app_stats.set_defaults(command_path="apps stats")

    p_accounts = topics.add_parser("accounts", help="Account commands")
    account_cmds = p_accounts.add_subparsers(dest="command", metavar="<command>")
    account_cmds.required = True

    p_acc_stats = account_cmds.add_parser("stats", parents=[common], help="Get account stats")
    _add_stats_flags(p_acc_stats)
    p_acc_stats.set_defaults(command_path="accounts stats")

    # --------------------------------------------------
    # connections
    # --------------------------------------------------
    p_connections = topics.add_parser("connections", help="Connection commands")
    connection_cmds = p_connections.add_subparsers(dest="command", metavar="<command>")
    connection_cmds.required = True

    p_conn_stats = connection_cmds.add_parser(
        "stats", parents=[common], help="View connection statistics for the app"
    )
    _add_stats_flags(p_conn_stats)
    p_conn_stats.set_defaults(command_path="connections stats")

    return parser


# ----------------------------------------------------------------------
# COMMAND LOOKUP
# ----------------------------------------------------------------------

def command_words(argv: Sequence[str]) -> List[str]:
    """Positional tokens of argv, skipping flags and their values."""
    words: List[str] = []
    skip_next = False
    for token in argv:
        if skip_next:
            skip_next = False
            continue
        if token.startswith("-"):
            if "=" not in token and token in _VALUE_FLAGS:
                skip_next = True
            continue
        words.append(token)
    return words


def find_unknown_command(argv: Sequence[str]) -> Optional[str]:
    """
    The command the user tried to run, if argv does not name a known one.
    Returns None for known commands and for bare topics (argparse reports
    those itself).
    """
    words = command_words(argv)
    if not words:
        return None

    prefixes = set()
    for path in COMMANDS:
        parts = path.split()
        for i in range(1, len(parts)):
            prefixes.add(" ".join(parts[:i]))

    for depth in range(1, len(words) + 1):
        attempt = " ".join(words[:depth])
        if attempt in COMMANDS:
            return None
        if attempt not in prefixes:
            return attempt
    return None


def suggest_command(attempt: str, argv: Sequence[str]) -> Optional[str]:
    """
    Closest known command for a mistyped one. Tries the attempt alone and
    with the trailing words (typos often sit in the topic, not the leaf).
    """
    words = command_words(argv)
    start = len(attempt.split())
    candidates = [" ".join(words[:n]) for n in range(start, min(len(words), 3) + 1)]
    candidates = candidates or [attempt]

    best: Optional[str] = None
    best_distance = None
    for text in candidates:
        match = closest_command(text, COMMANDS)
        if match is None:
            continue
        distance = levenshtein_distance(text.lower(), match)
        if best_distance is None or distance < best_distance:
            best, best_distance = match, distance
    return best


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

async def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    load_dotenv()

    attempt = find_unknown_command(argv)
    if attempt is not None:
        suggestion = suggest_command(attempt, argv)
        message = f"Command {attempt} not found."
        if suggestion:
            message += f" Did you mean {suggestion}?"
        print(f"ably: {message}", file=sys.stderr)
        return EXIT_USAGE

    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return int(e.code or 0)

    if args.verbose:
        set_console_level(logging.DEBUG)

    log.debug(f"Running '{args.command_path}'")

    sink = build_sink(args)
    ctx = build_context(args, sink=sink, app_id=getattr(args, "app_id", None))
    return await execute(COMMANDS[args.command_path], ctx)


def run():
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        # Interrupt before signal handlers were installed
        log.info("KeyboardInterrupt received before startup completed")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    run()
