"""
Pretty renderer for 'stats' records.

Keeps running totals across polls (cumulative stats, peak rates, average
rates since start). JSON mode never reaches this renderer; the sink writes
the raw stats record instead.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from rich.console import Console

from ablycli.shared.events import EventRecord
from ablycli.shared.logging.logger import get_logger

log = get_logger("services.stats.display")

BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


# ------------------------------------------------------------
# Formatting helpers
# ------------------------------------------------------------

def _strip_fraction(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_number(value: Any) -> str:
    if isinstance(value, float):
        if value.is_integer():
            return f"{int(value):,}"
        return _strip_fraction(f"{value:,.3f}")
    try:
        return f"{int(value):,}"
    except (TypeError, ValueError):
        return str(value)


def format_bytes(num_bytes: float) -> str:
    size = float(num_bytes or 0)
    unit_index = 0
    while size >= 1024 and unit_index < len(BYTE_UNITS) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.1f} {BYTE_UNITS[unit_index]}"


def format_rate(rate: float) -> str:
    if 0 < rate < 1:
        return f"{rate:.1f}"
    return _strip_fraction(f"{rate:,.1f}")


def format_elapsed(seconds: float) -> str:
    total = int(max(0, seconds))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


# ------------------------------------------------------------
# Running totals
# ------------------------------------------------------------

@dataclass
class RequestTotals:
    succeeded: float = 0
    failed: float = 0
    refused: float = 0

    @property
    def total(self) -> float:
        return self.succeeded + self.failed + self.refused

    @property
    def success_rate(self) -> str:
        if self.total <= 0:
            return "0.0"
        return f"{self.succeeded / self.total * 100:.1f}"


@dataclass
class CumulativeStats:
    messages_published: float = 0
    messages_delivered: float = 0
    data_published: float = 0
    data_delivered: float = 0

    connections_peak: float = 0
    connections_current: int = 0
    connections_opened: float = 0

    channels_peak: float = 0
    channels_current: int = 0
    channels_opened: float = 0

    api_requests: RequestTotals = field(default_factory=RequestTotals)
    token_requests: RequestTotals = field(default_factory=RequestTotals)


@dataclass
class PeakRates:
    published: float = 0.0
    delivered: float = 0.0
    connections: float = 0.0
    channels: float = 0.0
    api_requests: float = 0.0
    token_requests: float = 0.0


class StatsDisplay:
    """
    Stats dashboard renderer; register with
    sink.register_renderer("stats", display.render).
    """

    def __init__(
        self,
        *,
        live: bool = False,
        account: bool = False,
        interval: float = 6.0,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.live = live
        self.account = account
        self.interval = interval
        self._clock = clock
        self._now = now

        self._start: Optional[float] = clock() if live else None
        self._last_update: Optional[float] = None
        self._last_stats: Optional[Dict[str, Any]] = None

        self.cumulative = CumulativeStats()
        self.peaks = PeakRates()
        self.rendered = 0

    # ------------------------------------------------------------------

    @staticmethod
    def _entries(stats: Dict[str, Any]) -> Dict[str, Any]:
        entries = stats.get("entries")
        return entries if isinstance(entries, dict) else {}

    def _update_cumulative(self, entries: Dict[str, Any]) -> None:
        def e(key):
            return entries.get(key) or 0

        c = self.cumulative
        c.messages_published += e("messages.inbound.all.messages.count")
        c.messages_delivered += e("messages.outbound.all.messages.count")
        c.data_published += e("messages.inbound.all.messages.data")
        c.data_delivered += e("messages.outbound.all.messages.data")

        c.connections_peak = max(c.connections_peak, e("connections.all.peak"))
        c.connections_current = round(e("connections.all.mean"))
        c.connections_opened += e("connections.all.opened")

        c.channels_peak = max(c.channels_peak, e("channels.peak"))
        c.channels_current = round(e("channels.mean"))
        c.channels_opened += e("channels.opened")

        c.api_requests.succeeded += e("apiRequests.all.succeeded")
        c.api_requests.failed += e("apiRequests.all.failed")
        c.api_requests.refused += e("apiRequests.all.refused")

        c.token_requests.succeeded += e("apiRequests.tokenRequests.succeeded")
        c.token_requests.failed += e("apiRequests.tokenRequests.failed")
        c.token_requests.refused += e("apiRequests.tokenRequests.refused")

    def _update_peaks(self, entries: Dict[str, Any]) -> None:
        now = self._clock()
        if self._last_update is None:
            self._last_update = now
            return

        elapsed = now - self._last_update
        self._last_update = now
        if elapsed <= 0:
            return

        def e(key):
            return entries.get(key) or 0

        p = self.peaks
        p.published = max(p.published, e("messages.inbound.all.messages.count") / elapsed)
        p.delivered = max(p.delivered, e("messages.outbound.all.messages.count") / elapsed)
        p.connections = max(p.connections, e("connections.all.peak") / elapsed)
        p.channels = max(p.channels, e("channels.peak") / elapsed)

        api = (
            e("apiRequests.all.succeeded")
            + e("apiRequests.all.failed")
            + e("apiRequests.all.refused")
        )
        tokens = (
            e("apiRequests.tokenRequests.succeeded")
            + e("apiRequests.tokenRequests.failed")
            + e("apiRequests.tokenRequests.refused")
        )
        p.api_requests = max(p.api_requests, api / elapsed)
        p.token_requests = max(p.token_requests, tokens / elapsed)

    def elapsed_seconds(self) -> float:
        if self._start is None:
            return 0.0
        return max(0.0, self._clock() - self._start)

    def average_rates(self) -> Dict[str, float]:
        elapsed = self.elapsed_seconds()
        if elapsed <= 0:
            return {"published": 0.0, "delivered": 0.0, "connections": 0.0, "channels": 0.0}

        c = self.cumulative
        return {
            "published": c.messages_published / elapsed,
            "delivered": c.messages_delivered / elapsed,
            "connections": c.connections_opened / elapsed,
            "channels": c.channels_opened / elapsed,
        }

    # ------------------------------------------------------------------

    def update(self, stats: Dict[str, Any]) -> bool:
        """
        Fold one stats interval into the running totals.
        Returns False when the snapshot is unchanged since the last one.
        """
        if not stats or stats == self._last_stats:
            return False

        self._last_stats = dict(stats)
        entries = self._entries(stats)
        self._update_cumulative(entries)
        self._update_peaks(entries)
        return True

    def render(self, record: EventRecord, console: Console) -> None:
        stats = record.payload
        if not self.update(stats):
            log.debug("Stats unchanged; skipping redraw")
            return

        entries = self._entries(stats)

        def e(key):
            return entries.get(key) or 0

        if self.live:
            console.clear()

        console.print("[bold]Ably Stats Dashboard[/]")
        if self.live:
            console.print(
                f"[dim]Live updates every {format_rate(self.interval)} seconds. "
                f"Press Ctrl+C to exit.[/]\n"
            )

        console.print(f"[cyan]Time: {self._now().strftime('%Y-%m-%d %H:%M:%S')}[/]")
        if self._start is not None:
            console.print(f"[cyan]Elapsed: {format_elapsed(self.elapsed_seconds())}[/]")
        console.print("")

        console.print("[bold]Current Stats:[/]")
        if self.account:
            p = self.peaks
            console.print(
                f"[blue]Messages:[/] "
                f"{format_number(e('messages.inbound.all.messages.count'))} published, "
                f"{format_number(e('messages.outbound.all.messages.count'))} delivered "
                f"({format_rate(p.published)} msgs/s peak)"
            )
            console.print(
                f"[yellow]Connections:[/] "
                f"{format_number(e('connections.all.peak'))} peak, "
                f"{format_number(e('connections.all.mean'))} current "
                f"({format_rate(p.connections)} new conns/s peak)"
            )
            console.print(
                f"[green]Channels:[/] "
                f"{format_number(e('channels.peak'))} peak, "
                f"{format_number(e('channels.mean'))} current "
                f"({format_rate(p.channels)} new chans/s peak)"
            )
            console.print(
                f"[magenta]API Requests:[/] "
                f"{format_number(e('apiRequests.all.succeeded'))} succeeded, "
                f"{format_number(e('apiRequests.all.failed'))} failed, "
                f"{format_number(e('apiRequests.all.refused'))} refused "
                f"({format_rate(p.api_requests)} reqs/s peak)"
            )
            console.print(
                f"[cyan]Token Requests:[/] "
                f"{format_number(e('apiRequests.tokenRequests.succeeded'))} succeeded, "
                f"{format_number(e('apiRequests.tokenRequests.failed'))} failed, "
                f"{format_number(e('apiRequests.tokenRequests.refused'))} refused "
                f"({format_rate(p.token_requests)} tokens/s peak)"
            )
        else:
            console.print(f"[yellow]Connections:[/] {format_number(e('connections.all.peak'))} peak")
            console.print(f"[green]Channels:[/] {format_number(e('channels.peak'))} peak")
            console.print(
                f"[blue]Messages:[/] "
                f"{format_number(e('messages.inbound.all.messages.count'))} published, "
                f"{format_number(e('messages.outbound.all.messages.count'))} delivered"
            )
        console.print("")

        c = self.cumulative
        avg = self.average_rates()

        console.print("[bold]Cumulative Stats:[/]")
        console.print(
            f"[yellow]Connections:[/] {format_number(c.connections_peak)} peak, "
            f"{format_number(c.connections_opened)} opened "
            f"({format_rate(avg['connections'])} new conns/s avg)"
        )
        console.print(
            f"[green]Channels:[/] {format_number(c.channels_peak)} peak, "
            f"{format_number(c.channels_opened)} opened "
            f"({format_rate(avg['channels'])} new chans/s avg)"
        )
        console.print(
            f"[blue]Messages:[/] {format_number(c.messages_published)} published "
            f"({format_bytes(c.data_published)}, {format_rate(avg['published'])} msgs/s avg), "
            f"{format_number(c.messages_delivered)} delivered "
            f"({format_bytes(c.data_delivered)}, {format_rate(avg['delivered'])} msgs/s avg)"
        )

        for label, color, totals in (
            ("API Requests", "magenta", c.api_requests),
            ("Token Requests", "cyan", c.token_requests),
        ):
            console.print(
                f"[{color}]{label}:[/] "
                f"{format_number(totals.succeeded)} succeeded, "
                f"{format_number(totals.failed)} failed, "
                f"{format_number(totals.refused)} refused, "
                f"{format_number(totals.total)} total, "
                f"{totals.success_rate}% success rate"
            )

        self.rendered += 1


def render_stats_interval(record: EventRecord, console: Console) -> None:
    """One-shot rendering of a single stats interval (non-live mode)."""
    stats = record.payload
    entries = stats.get("entries") if isinstance(stats.get("entries"), dict) else {}

    def e(key):
        return entries.get(key) or 0

    console.print(
        f"[bold]Interval {stats.get('intervalId') or 'Unknown time'}[/] "
        f"({stats.get('unit') or 'unknown unit'})"
    )
    console.print("  Messages:")
    console.print(
        f"    Published: {format_number(e('messages.inbound.all.messages.count'))} "
        f"({format_bytes(e('messages.inbound.all.messages.data'))})"
    )
    console.print(
        f"    Delivered: {format_number(e('messages.outbound.all.messages.count'))} "
        f"({format_bytes(e('messages.outbound.all.messages.data'))})"
    )
    console.print("  Presence:")
    console.print(
        f"    Published: {format_number(e('messages.inbound.all.presence.count'))} "
        f"({format_bytes(e('messages.inbound.all.presence.data'))})"
    )
    console.print(
        f"    Delivered: {format_number(e('messages.outbound.all.presence.count'))} "
        f"({format_bytes(e('messages.outbound.all.presence.data'))})"
    )
    console.print("  Connections:")
    console.print(
        f"    Peak: {format_number(e('connections.all.peak'))}, "
        f"Mean: {format_number(round(e('connections.all.mean')))}, "
        f"Opened: {format_number(e('connections.all.opened'))}"
    )
    console.print("  Channels:")
    console.print(
        f"    Peak: {format_number(e('channels.peak'))}, "
        f"Mean: {format_number(round(e('channels.mean')))}, "
        f"Opened: {format_number(e('channels.opened'))}"
    )
    console.print("  API Requests:")
    console.print(
        f"    Succeeded: {format_number(e('apiRequests.all.succeeded'))}, "
        f"Failed: {format_number(e('apiRequests.all.failed'))}, "
        f"Refused: {format_number(e('apiRequests.all.refused'))}"
    )
    console.print("  Token Requests:")
    console.print(
        f"    Succeeded: {format_number(e('apiRequests.tokenRequests.succeeded'))}, "
        f"Failed: {format_number(e('apiRequests.tokenRequests.failed'))}, "
        f"Refused: {format_number(e('apiRequests.tokenRequests.refused'))}"
    )
    console.print("")


__all__ = [
    "StatsDisplay",
    "format_bytes",
    "format_elapsed",
    "format_number",
    "format_rate",
    "render_stats_interval",
]
