from conftest import FakeClock, json_lines, json_sink

from ablycli.core.router import DedupeKey, EventRouter, RecencyMap
from ablycli.shared.events import create_event_record


def _presence(client_id, action="enter", connection_id="conn-1"):
    return {"action": action, "clientId": client_id, "connectionId": connection_id}


def test_generic_normalizer_forwards_in_source_order():
    sink = json_sink()
    router = EventRouter(sink)

    for i in range(5):
        router.on_event("presence", _presence(f"user-{i}"))

    lines = json_lines(sink)
    assert [line["clientId"] for line in lines] == [f"user-{i}" for i in range(5)]
    assert router.forwarded == 5


def test_duplicate_within_window_is_dropped():
    sink = json_sink()
    clock = FakeClock()
    router = EventRouter(sink, clock=clock)
    router.register("presence", dedupe=True)

    assert router.on_event("presence", _presence("alice")) is not None
    clock.advance(0.1)
    assert router.on_event("presence", _presence("alice")) is None

    assert len(json_lines(sink)) == 1
    assert router.dropped_duplicates == 1


def test_events_outside_window_are_both_forwarded():
    sink = json_sink()
    clock = FakeClock()
    router = EventRouter(sink, clock=clock)
    router.register("presence", dedupe=True)

    router.on_event("presence", _presence("alice"))
    clock.advance(0.6)
    router.on_event("presence", _presence("alice"))

    assert len(json_lines(sink)) == 2


def test_dedupe_distinguishes_action_and_actor():
    sink = json_sink()
    router = EventRouter(sink, clock=FakeClock())
    router.register("presence", dedupe=True)

    router.on_event("presence", _presence("alice", "enter"))
    router.on_event("presence", _presence("alice", "update"))
    router.on_event("presence", _presence("bob", "enter"))

    assert len(json_lines(sink)) == 3


def test_kinds_without_dedupe_are_never_suppressed():
    sink = json_sink()
    router = EventRouter(sink, clock=FakeClock())

    router.on_event("message", {"name": "tick", "clientId": "alice"})
    router.on_event("message", {"name": "tick", "clientId": "alice"})

    assert len(json_lines(sink)) == 2


def test_self_originated_events_are_dropped():
    sink = json_sink()
    router = EventRouter(sink, self_identities=["me"])
    router.add_self_identity("conn-self")

    assert router.on_event("presence", _presence("me")) is None
    assert router.on_event("presence", _presence("anon", connection_id="conn-self")) is None
    assert router.on_event("presence", _presence("other")) is not None

    assert router.dropped_self == 2
    assert [line["clientId"] for line in json_lines(sink)] == ["other"]


def test_dispatch_failure_skips_one_event_only():
    sink = json_sink()
    router = EventRouter(sink)

    def normalizer(raw):
        if raw == "bad":
            raise KeyError("missing")
        return create_event_record(category="message", source_kind="message", payload={"v": raw})

    router.register("message", normalizer)

    router.on_event("message", "one")
    assert router.on_event("message", "bad") is None
    router.on_event("message", "two")

    assert [line["v"] for line in json_lines(sink)] == ["one", "two"]
    assert router.dispatch_errors == 1


def test_fatal_record_is_emitted_then_reported():
    sink = json_sink()
    errors = []
    router = EventRouter(sink, on_fatal=errors.append)

    record = create_event_record(
        category="connection",
        source_kind="connection",
        payload={"status": "failed", "reason": "token expired"},
        action="failed",
        fatal=True,
    )
    router.on_event("connection", record)

    assert json_lines(sink)[0]["status"] == "failed"
    assert len(errors) == 1
    assert "token expired" in str(errors[0])


def test_recency_map_prunes_and_bounds():
    recency = RecencyMap(window=0.5, capacity=2)

    recency.record(DedupeKey("a", "enter"), 0.0)
    recency.record(DedupeKey("b", "enter"), 0.1)
    recency.record(DedupeKey("c", "enter"), 0.2)
    assert len(recency) == 2
    assert not recency.seen_recently(DedupeKey("a", "enter"), 0.2)

    recency.record(DedupeKey("d", "enter"), 1.0)
    assert len(recency) == 1
    assert recency.seen_recently(DedupeKey("d", "enter"), 1.2)
