import asyncio

from conftest import FakeClock, json_lines, json_sink, output_of, pretty_sink

from ablycli.core.errors import ControlApiError
from ablycli.core.router import EventRouter
from ablycli.services.stats.display import (
    StatsDisplay,
    format_bytes,
    format_elapsed,
    format_number,
    format_rate,
)
from ablycli.services.stats.poller import LOOKBACK_MS, StatsPoller, normalize_stats, stats_timer


def _stats(published=10, delivered=20, interval="2024-01-01:10:00"):
    return {
        "intervalId": interval,
        "unit": "minute",
        "entries": {
            "messages.inbound.all.messages.count": published,
            "messages.outbound.all.messages.count": delivered,
            "messages.inbound.all.messages.data": 2048,
            "connections.all.peak": 4,
            "connections.all.opened": 2,
            "channels.peak": 3,
            "apiRequests.all.succeeded": 9,
            "apiRequests.all.failed": 1,
        },
    }


# ----------------------------------------------------------------------
# Formatting
# ----------------------------------------------------------------------

def test_format_helpers():
    assert format_bytes(0) == "0.0 B"
    assert format_bytes(2048) == "2.0 KB"
    assert format_bytes(5 * 1024 * 1024) == "5.0 MB"
    assert format_rate(0.25) == "0.2"
    assert format_rate(12.0) == "12"
    assert format_rate(1234.56) == "1,234.6"
    assert format_number(1234567) == "1,234,567"
    assert format_number(2.5) == "2.5"
    assert format_elapsed(5) == "5s"
    assert format_elapsed(125) == "2m 5s"
    assert format_elapsed(3725) == "1h 2m 5s"


# ----------------------------------------------------------------------
# Display
# ----------------------------------------------------------------------

def test_display_accumulates_and_skips_unchanged():
    clock = FakeClock()
    display = StatsDisplay(live=True, clock=clock)

    assert display.update(_stats(published=10))
    assert not display.update(_stats(published=10))

    clock.advance(6)
    assert display.update(_stats(published=5, interval="2024-01-01:10:01"))

    assert display.cumulative.messages_published == 15
    assert display.cumulative.connections_peak == 4
    assert display.cumulative.api_requests.total == 20
    assert display.cumulative.api_requests.success_rate == "90.0"
    assert display.peaks.published == 5 / 6


def test_display_renders_app_dashboard():
    sink = pretty_sink()
    display = StatsDisplay(live=False)
    sink.register_renderer("stats", display.render)

    sink.emit(normalize_stats(_stats()))
    sink.emit(normalize_stats(_stats()))

    text = output_of(sink)
    assert text.count("Ably Stats Dashboard") == 1
    assert "Connections: 4 peak" in text
    assert "Messages: 10 published, 20 delivered" in text
    assert "Cumulative Stats:" in text
    assert "2.0 KB" in text
    assert "90.0% success rate" in text


def test_display_renders_account_dashboard():
    sink = pretty_sink()
    sink.register_renderer("stats", StatsDisplay(account=True).render)

    sink.emit(normalize_stats(_stats()))

    text = output_of(sink)
    assert "msgs/s peak" in text
    assert "Token Requests:" in text


def test_json_mode_emits_raw_stats():
    sink = json_sink()
    sink.register_renderer("stats", StatsDisplay().render)

    sink.emit(normalize_stats(_stats()))

    line = json_lines(sink)[0]
    assert line["category"] == "stats"
    assert line["intervalId"] == "2024-01-01:10:00"
    assert line["entries"]["channels.peak"] == 3


# ----------------------------------------------------------------------
# Poller
# ----------------------------------------------------------------------

async def test_poll_once_routes_latest_interval():
    calls = []

    async def fetch(**options):
        calls.append(options)
        return [_stats(interval="latest"), _stats(interval="older")]

    sink = json_sink()
    poller = StatsPoller(fetch, EventRouter(sink), unit="hour", clock=lambda: 1_000_000.0)

    record = await poller.poll_once()

    assert record.payload["intervalId"] == "latest"
    assert calls == [
        {
            "start": 1_000_000_000 - LOOKBACK_MS["hour"],
            "end": 1_000_000_000,
            "unit": "hour",
            "limit": 5,
        }
    ]
    assert [line["intervalId"] for line in json_lines(sink)] == ["latest"]


async def test_poll_failure_is_routed_as_error_record():
    async def fetch(**options):
        raise ControlApiError(503, "unavailable")

    sink = json_sink()
    poller = StatsPoller(fetch, EventRouter(sink))

    await poller.poll_once()

    line = json_lines(sink)[0]
    assert line["success"] is False
    assert "503" in line["error"]
    assert poller.failures == 1


async def test_stats_timer_starts_and_stops_polling():
    polled = asyncio.Event()

    async def fetch(**options):
        polled.set()
        return []

    poller = StatsPoller(fetch, EventRouter(json_sink()), interval=0.01)
    handle = await stats_timer(poller)()

    await asyncio.wait_for(polled.wait(), 1.0)
    assert poller.running

    await handle.release()
    assert not poller.running
    assert handle.released


async def test_unexpected_fetch_failure_keeps_polling():
    calls = []

    async def fetch(**options):
        calls.append(options)
        raise ValueError("Expecting value: line 1 column 1 (char 0)")

    sink = json_sink()
    poller = StatsPoller(fetch, EventRouter(sink), interval=0.1)
    poller.start()

    await asyncio.sleep(0.35)
    assert poller.running
    await poller.stop()

    assert len(calls) >= 2
    assert poller.failures == len(calls)
    lines = json_lines(sink)
    assert lines[0]["success"] is False
    assert lines[0]["error"].startswith("Error fetching stats: Expecting value")
