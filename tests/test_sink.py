import json

from conftest import json_lines, json_sink, output_of, pretty_sink

from ablycli.core.errors import ForceExitError
from ablycli.core.lifecycle import RunOutcome, TerminationReason
from ablycli.shared.events import create_event_record
from ablycli.shared.output import is_json_data


def _presence_record(action):
    return create_event_record(
        category="presence",
        source_kind="presence",
        payload={"action": action, "clientId": "alice", "data": {"mood": "ok"}},
        actor_id="alice",
        action=action,
        ts=1_700_000_000_000,
    )


def test_json_mode_writes_one_object_per_record():
    sink = json_sink()
    sink.emit(_presence_record("enter"))
    sink.emit(_presence_record("leave"))

    text = output_of(sink)
    lines = text.splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["success"] is True
    assert first["category"] == "presence"
    assert first["timestamp"] == "2023-11-14T22:13:20Z"
    assert "✓" not in text


def test_pretty_mode_writes_no_json():
    sink = pretty_sink()
    sink.emit(_presence_record("enter"))
    sink.emit(_presence_record("leave"))
    sink.emit(_presence_record("update"))

    text = output_of(sink)
    assert "✓ alice entered presence" in text
    assert "✗ alice left presence" in text
    assert "⟲ alice updated presence data" in text
    for line in text.splitlines():
        assert not line.startswith('{"success"')


def test_pretty_message_shows_channel_event_and_data():
    sink = pretty_sink()
    sink.emit(
        create_event_record(
            category="message",
            source_kind="message",
            payload={"channel": "orders", "event": "created", "data": {"id": 7}},
        )
    )

    text = output_of(sink)
    assert "Channel: orders | Event: created" in text
    assert '"id": 7' in text


def test_custom_renderer_overrides_category():
    sink = pretty_sink()
    sink.register_renderer("stats", lambda record, console: console.print("STATS!"))
    sink.emit(create_event_record(category="stats", source_kind="stats", payload={}))

    assert output_of(sink).strip() == "STATS!"


def test_status_and_error_in_json_mode():
    sink = json_sink()
    sink.emit_status("Entered presence on [cyan]lobby[/]", status="entered", channel="lobby")
    sink.emit_error(ValueError("boom"), code=40000)

    status, error = json_lines(sink)
    assert status == {
        "success": True,
        "status": "entered",
        "message": "Entered presence on lobby",
        "channel": "lobby",
    }
    assert error == {"success": False, "error": "boom", "code": 40000}


def test_force_exit_error_pretty_line():
    sink = pretty_sink()
    sink.emit_error(ForceExitError(5))
    assert "Force exiting after timeout..." in output_of(sink)


def test_terminal_outcome():
    sink = json_sink()
    sink.emit_terminal(
        RunOutcome(success=True, reason=TerminationReason.SIGNAL, released=3)
    )
    terminal = json_lines(sink)[0]
    assert terminal["status"] == "closed"
    assert terminal["reason"] == "signal"
    assert terminal["exitCode"] == 0
    assert terminal["released"] == 3

    pretty = pretty_sink()
    pretty.emit_terminal(RunOutcome(success=False, exit_code=1, error="conn failed"))
    assert "Closed with errors: conn failed" in output_of(pretty)


def test_is_json_data():
    assert is_json_data({"a": 1})
    assert is_json_data("[1, 2]")
    assert not is_json_data("plain text")
    assert not is_json_data("42")
    assert not is_json_data(None)
