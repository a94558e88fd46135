from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ablycli.core.errors import AblyCliError
from ablycli.core.lifecycle import Acquirer
from ablycli.core.resources import ResourceKind, acquire
from ablycli.core.router import EventRouter
from ablycli.shared.events import EventRecord, create_event_record, read_field
from ablycli.shared.logging.logger import get_logger

log = get_logger("services.stats.poller")

DEFAULT_POLL_INTERVAL = 6.0
LIVE_FETCH_LIMIT = 5

STATS_UNITS = ("minute", "hour", "day", "month")

# How far back each unit looks for the latest interval
LOOKBACK_MS: Dict[str, int] = {
    "minute": 60 * 60 * 1000,
    "hour": 24 * 60 * 60 * 1000,
    "day": 7 * 24 * 60 * 60 * 1000,
    "month": 90 * 24 * 60 * 60 * 1000,
}

StatsFetcher = Callable[..., Awaitable[List[Dict[str, Any]]]]


def normalize_stats(raw: Any) -> EventRecord:
    payload = dict(raw) if isinstance(raw, dict) else {"entries": {}}
    return create_event_record(
        category="stats",
        source_kind="stats",
        payload=payload,
        raw_metadata={"intervalId": read_field(raw, "intervalId")},
        action=read_field(raw, "unit"),
    )


def stats_error_record(error: BaseException) -> EventRecord:
    return create_event_record(
        category="error",
        source_kind="stats",
        payload={"error": f"Error fetching stats: {error}"},
    )


class StatsPoller:
    """
    Periodically fetches the latest stats interval and routes it as a
    'stats' event. Fetch failures are routed as non-fatal error records.
    """

    def __init__(
        self,
        fetch: StatsFetcher,
        router: EventRouter,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        unit: str = "minute",
        clock: Callable[[], float] = time.time,
    ):
        if unit not in LOOKBACK_MS:
            raise ValueError(f"Unsupported stats unit: {unit}")

        self._fetch = fetch
        self._router = router
        self._interval = max(0.1, float(interval))
        self._unit = unit
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

        self.polls = 0
        self.failures = 0

        router.register("stats", normalize_stats)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> Optional[EventRecord]:
        now_ms = int(self._clock() * 1000)
        self.polls += 1

        try:
            stats = await self._fetch(
                start=now_ms - LOOKBACK_MS[self._unit],
                end=now_ms,
                unit=self._unit,
                limit=LIVE_FETCH_LIMIT,
            )
        except AblyCliError as e:
            self.failures += 1
            log.warning(f"Stats poll failed: {e}")
            return self._router.on_event("stats", stats_error_record(e))
        except Exception as e:
            self.failures += 1
            log.error(f"Unexpected stats poll failure: {e!r}")
            return self._router.on_event("stats", stats_error_record(e))

        if not stats:
            log.debug("Stats poll returned no intervals")
            return None

        return self._router.on_event("stats", stats[0])

    async def _run(self):
        try:
            while True:
                await self.poll_once()
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            log.debug("Stats poller cancelled")
            raise

    def start(self) -> None:
        if self._task:
            return
        log.info(f"Stats poller starting (unit={self._unit}, every {self._interval:g}s)")
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        log.info("Stats poller stopped")


def stats_timer(poller: StatsPoller, name: str = "stats") -> Acquirer:
    """Polling loop as a TIMER handle; release cancels the loop."""

    async def _acquire():
        return await acquire(
            ResourceKind.TIMER,
            name,
            lambda: poller.start(),
            lambda _: poller.stop(),
        )

    return _acquire


__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "LOOKBACK_MS",
    "STATS_UNITS",
    "StatsPoller",
    "normalize_stats",
    "stats_timer",
]
