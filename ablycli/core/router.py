"""
Event routing from SDK callbacks to the output sink.

Pipeline per inbound event:
    normalize -> self-filter -> dedupe -> sink.emit -> fatal hook

Rules:
- Executes inside SDK callback dispatch, one event at a time
- Never reorders; only drops self-originated events and duplicates
- A failure while handling one event is logged and contained
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Set

from ablycli.core.errors import DispatchError
from ablycli.shared.events import EventRecord, generic_normalizer
from ablycli.shared.logging.logger import get_logger

log = get_logger("core.router")

DEFAULT_DEDUPE_WINDOW = 0.5
DEFAULT_RECENCY_CAPACITY = 1024

Normalizer = Callable[[Any], EventRecord]


@dataclass(frozen=True)
class DedupeKey:
    actor_id: str
    action: str


class RecencyMap:
    """
    Bounded map of DedupeKey -> last-seen monotonic time.

    Expired entries are pruned on every insert; beyond capacity the
    oldest entry is evicted.
    """

    def __init__(
        self,
        *,
        window: float = DEFAULT_DEDUPE_WINDOW,
        capacity: int = DEFAULT_RECENCY_CAPACITY,
    ):
        self.window = float(window)
        self.capacity = max(1, int(capacity))
        self._entries: "OrderedDict[DedupeKey, float]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def seen_recently(self, key: DedupeKey, now: float) -> bool:
        last = self._entries.get(key)
        return last is not None and (now - last) < self.window

    def record(self, key: DedupeKey, now: float) -> None:
        self._entries[key] = now
        self._entries.move_to_end(key)
        self._prune(now)

    def _prune(self, now: float) -> None:
        while self._entries:
            oldest_key, oldest_ts = next(iter(self._entries.items()))
            if (now - oldest_ts) >= self.window or len(self._entries) > self.capacity:
                self._entries.popitem(last=False)
                continue
            break


class EventRouter:
    """
    Dispatches inbound SDK events to the output sink.

    Sources register a normalizer; kinds registered with dedupe=True
    (presence-style sources that may redeliver) go through the recency map.
    """

    def __init__(
        self,
        sink,
        *,
        self_identities: Optional[Iterable[Optional[str]]] = None,
        dedupe_window: float = DEFAULT_DEDUPE_WINDOW,
        capacity: int = DEFAULT_RECENCY_CAPACITY,
        clock: Callable[[], float] = time.monotonic,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ):
        self._sink = sink
        self._self_identities: Set[str] = {
            str(i) for i in (self_identities or []) if i
        }
        self._recency = RecencyMap(window=dedupe_window, capacity=capacity)
        self._clock = clock
        self._on_fatal = on_fatal

        self._normalizers: Dict[str, Normalizer] = {}
        self._dedupe_kinds: Set[str] = set()

        self.forwarded = 0
        self.dropped_self = 0
        self.dropped_duplicates = 0
        self.dispatch_errors = 0

    # ------------------------------------------------------------

    def register(
        self,
        source_kind: str,
        normalizer: Optional[Normalizer] = None,
        *,
        dedupe: bool = False,
    ) -> None:
        if normalizer is not None:
            self._normalizers[source_kind] = normalizer
        if dedupe:
            self._dedupe_kinds.add(source_kind)
        else:
            self._dedupe_kinds.discard(source_kind)

    def add_self_identity(self, identity: Optional[str]) -> None:
        """Connection ids are only known after connecting."""
        if identity:
            self._self_identities.add(str(identity))

    def set_fatal_handler(self, handler: Callable[[BaseException], None]) -> None:
        self._on_fatal = handler

    # ------------------------------------------------------------

    def _normalize(self, source_kind: str, raw_event: Any) -> EventRecord:
        if isinstance(raw_event, EventRecord):
            return raw_event

        normalizer = self._normalizers.get(source_kind)
        if normalizer is None:
            return generic_normalizer(source_kind, raw_event)
        return normalizer(raw_event)

    def _is_self(self, record: EventRecord) -> bool:
        if not self._self_identities:
            return False
        return (
            record.actor_id in self._self_identities
            or record.connection_id in self._self_identities
        )

    def _is_duplicate(self, source_kind: str, record: EventRecord) -> bool:
        if source_kind not in self._dedupe_kinds or not record.actor_id:
            return False

        key = DedupeKey(record.actor_id, record.action or "")
        now = self._clock()
        if self._recency.seen_recently(key, now):
            return True

        self._recency.record(key, now)
        return False

    def on_event(self, source_kind: str, raw_event: Any) -> Optional[EventRecord]:
        """
        Route one inbound event. Returns the forwarded record, or None if
        the event was dropped or failed to dispatch.
        """
        try:
            record = self._normalize(source_kind, raw_event)

            if self._is_self(record):
                self.dropped_self += 1
                return None

            if self._is_duplicate(source_kind, record):
                self.dropped_duplicates += 1
                log.debug(
                    f"Duplicate {source_kind} event dropped "
                    f"(actor={record.actor_id}, action={record.action})"
                )
                return None

            self._sink.emit(record)
            self.forwarded += 1

        except Exception as e:
            self.dispatch_errors += 1
            err = DispatchError(source_kind, e)
            log.warning(f"{err} (event skipped)")
            return None

        if record.fatal and self._on_fatal is not None:
            reason = record.payload.get("error") or record.payload.get("reason")
            self._on_fatal(RuntimeError(reason or f"Fatal {source_kind} event"))

        return record

    def listener(self, source_kind: str) -> Callable[[Any], None]:
        """Bind a source kind into an SDK-compatible callback."""

        def _listener(raw_event: Any) -> None:
            self.on_event(source_kind, raw_event)

        return _listener


__all__ = [
    "DedupeKey",
    "RecencyMap",
    "EventRouter",
    "DEFAULT_DEDUPE_WINDOW",
]
