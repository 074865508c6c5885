from collections import deque
from dataclasses import dataclass
from types import SimpleNamespace

import pytest

from rail import (
    ERROR_EVENT,
    InvalidHandlerError,
    Rail,
    RailOptions,
    create,
)


def test_emit_delivers_payload(rail):
    received = []
    rail.on("test.event", received.append)

    assert rail.emit("test.event", {"message": "hello world"}) == 1
    assert received == [{"message": "hello world"}]


def test_emit_without_payload_sends_empty_dict(rail):
    received = []
    rail.on("test.event", received.append)
    rail.emit("test.event")
    assert received == [{}]


def test_emit_none_payload_passes_none(rail):
    received = []
    rail.on("test.event", received.append)
    rail.emit("test.event", None)
    assert received == [None]


def test_emit_with_no_listeners_returns_zero(rail):
    assert rail.emit("nonexistent.event", {"data": "test"}) == 0


def test_listeners_run_in_registration_order(rail):
    order = []
    for i in range(4):
        rail.on("ordered", lambda _, i=i: order.append(i))

    assert rail.emit("ordered") == 4
    assert order == [0, 1, 2, 3]


def test_on_rejects_non_callable(rail):
    with pytest.raises(InvalidHandlerError):
        rail.on("x", 42)


def test_unsubscribe_removes_listener(rail):
    calls = []
    unsubscribe = rail.on("x", calls.append)

    assert unsubscribe.event == "x"
    assert unsubscribe() is True
    assert unsubscribe() is False
    assert rail.emit("x", 1) == 0
    assert calls == []


def test_off_by_listener_id(rail):
    unsubscribe = rail.on("x", lambda _: None)
    assert rail.off("x", unsubscribe.listener_id) is True
    assert rail.get_events() == {}


def test_off_unknown_id_returns_false(rail):
    rail.on("x", lambda _: None)
    assert rail.off("x", 12345) is False
    assert rail.off("y", 1) is False


def test_once_fires_a_single_time(rail):
    calls = []
    rail.once("x", calls.append)
    rail.emit("x", 1)
    rail.emit("x", 2)
    assert calls == [1]
    assert "x" not in rail.get_events()


# Isolation


def test_handlers_cannot_contaminate_each_other(rail):
    original = {"count": 1, "nested": {"value": "original"}}
    seen = []

    def first(data):
        seen.append(data["count"])
        data["count"] = 999
        data["nested"]["value"] = "modified1"

    def second(data):
        seen.append(data["count"])
        data["nested"]["value"] = "modified2"

    rail.on("contamination", first, "module-1")
    rail.on("contamination", second, "module-2")
    rail.emit("contamination", original)

    assert seen == [1, 1]
    assert original == {"count": 1, "nested": {"value": "original"}}


def test_each_listener_gets_a_distinct_copy(rail):
    original = {"x": 0}
    received = []
    rail.on("t", received.append)
    rail.on("t", received.append)
    rail.emit("t", original)

    assert received[0] == received[1] == original
    assert received[0] is not original
    assert received[1] is not original
    assert received[0] is not received[1]


def test_mutating_handler_does_not_affect_later_reader(rail):
    observed = []

    def writer(data):
        data["x"] = 1

    def reader(data):
        observed.append(data.get("x"))

    rail.on("t", writer, "a")
    rail.on("t", reader, "b")
    rail.emit("t", {})
    assert observed == [None]


@dataclass(slots=True)
class Cart:
    items: list


@pytest.mark.parametrize(
    "payload",
    [deque([1]), Cart([1]), SimpleNamespace()],
    ids=["deque", "slotted-dataclass", "empty-namespace"],
)
def test_writer_cannot_reach_emitter_payload(rail, payload):
    seen = []

    def writer(data):
        seen.append(data)
        if isinstance(data, deque):
            data.append(2)
        elif isinstance(data, dict):
            data["items"] = ["changed"]

    rail.on("t", writer, "a")
    rail.on("t", seen.append, "b")
    rail.emit("t", payload)

    assert seen[0] is not payload
    assert seen[1] is not payload
    assert seen[0] is not seen[1]
    if isinstance(payload, deque):
        assert list(payload) == [1]
        assert list(seen[1]) == [1]
    elif isinstance(payload, Cart):
        assert payload.items == [1]
        assert seen[1] == {"items": [1]}
    else:
        assert vars(payload) == {}
        assert seen[1] == {}


def test_disabling_clone_shares_the_payload():
    rail = Rail(clone=False)
    original = {"value": "original"}
    rail.on("noclone", lambda data: data.update(value="modified"))

    rail.emit("noclone", original)
    assert original["value"] == "modified"


def test_clone_toggles_at_runtime(rail):
    rail.on("toggle", lambda data: data.update(value="modified"))

    rail.set_clone(False)
    first = {"value": "original"}
    rail.emit("toggle", first)
    assert first["value"] == "modified"
    assert rail.clone is False

    rail.set_clone(True)
    second = {"value": "original"}
    rail.emit("toggle", second)
    assert second["value"] == "original"


# Errors


def test_failing_listener_does_not_stop_others(rail, errors):
    calls = []

    def broken(_):
        raise RuntimeError("boom")

    rail.on("test.error", broken, "broken-module")
    rail.on("test.error", lambda _: calls.append("ok"), "good-module")

    assert rail.emit("test.error") == 1
    assert calls == ["ok"]
    assert len(errors) == 1
    assert errors[0]["module"] == "broken-module"
    assert errors[0]["event"] == "test.error"
    assert errors[0]["error"] == "boom"
    assert isinstance(errors[0]["timestamp"], int)


def test_error_message_falls_back_to_exception_name(rail, errors):
    def broken(_):
        raise ValueError()

    rail.on("x", broken)
    rail.emit("x")
    assert errors[0]["error"] == "ValueError"


def test_error_event_is_cloned_even_when_cloning_disabled():
    rail = Rail(clone=False)
    received = []

    def mutate(data):
        data["error"] = "tampered"
        received.append(data)

    rail.on(ERROR_EVENT, mutate, "first")
    rail.on(ERROR_EVENT, received.append, "second")
    rail.on("x", lambda _: 1 / 0, "broken")

    rail.emit("x")
    assert received[0] is not received[1]
    assert received[1]["error"] == "division by zero"


def test_failing_error_handler_does_not_recurse(rail):
    calls = []

    def broken_error_handler(payload):
        calls.append(payload["module"])
        raise RuntimeError("error handler broke")

    rail.on(ERROR_EVENT, broken_error_handler, "monitor")
    rail.on("x", lambda _: 1 / 0, "broken")

    assert rail.emit("x") == 0
    assert calls == ["broken"]


def test_failing_error_handler_with_cloning_disabled_does_not_recurse():
    rail = Rail(clone=False)
    calls = []

    def broken_error_handler(payload):
        calls.append(payload)
        rail.emit("x")
        raise RuntimeError("still broken")

    rail.on(ERROR_EVENT, broken_error_handler, "monitor")
    rail.on("x", lambda _: 1 / 0, "broken")

    rail.emit("x")
    assert len(calls) == 1


def test_cyclic_payload_is_a_handler_failure(rail, errors):
    cyclic = {}
    cyclic["self"] = cyclic
    rail.on("cycle", lambda _: None, "cycler")

    assert rail.emit("cycle", cyclic) == 0
    assert errors[0]["module"] == "cycler"


# Re-entrancy


def test_listener_added_during_emit_waits_for_next_emit(rail):
    calls = []

    def adder(_):
        calls.append("adder")
        rail.on("x", lambda _: calls.append("late"))

    rail.on("x", adder)
    rail.emit("x")
    assert calls == ["adder"]

    rail.emit("x")
    assert calls == ["adder", "adder", "late"]


def test_listener_removed_during_emit_still_runs_this_time(rail):
    calls = []
    holder = {}

    def remover(_):
        calls.append("remover")
        holder["second"]()

    rail.on("x", remover)
    holder["second"] = rail.on("x", lambda _: calls.append("second"))

    assert rail.emit("x") == 2
    assert calls == ["remover", "second"]
    assert rail.emit("x") == 1


def test_nested_emit_from_handler(rail):
    pongs = []
    rail.on("ping", lambda _: rail.emit("pong", {"n": 1}))
    rail.on("pong", pongs.append)

    rail.emit("ping")
    assert pongs == [{"n": 1}]


# Diagnostics


def test_history_keeps_original_payload(rail):
    payload = {"n": 1}
    rail.emit("a", payload)
    rail.emit("b")

    history = rail.get_history()
    assert [e.event for e in history] == ["a", "b"]
    assert history[0].payload is payload
    assert history[0].to_dict()["event"] == "a"


def test_history_limit_and_filter(rail):
    for i in range(5):
        rail.emit("a" if i % 2 == 0 else "b", {"i": i})

    assert [e.payload["i"] for e in rail.get_history(2)] == [3, 4]
    assert [e.payload["i"] for e in rail.get_history(10, event="a")] == [0, 2, 4]
    assert rail.get_history(0) == []


def test_history_is_bounded():
    rail = Rail(max_history=3)
    for i in range(5):
        rail.emit("tick", {"i": i})

    assert [e.payload["i"] for e in rail.get_history(10)] == [2, 3, 4]
    assert rail.get_stats()["events_emitted"] == 5


def test_clear_history(rail):
    rail.emit("a")
    rail.clear_history()
    assert rail.get_history() == []
    assert rail.get_stats()["events_emitted"] == 0


def test_stats(rail):
    rail.attach({"name": "stats-module", "connect": lambda r: r.on("x", print, "stats-module")})
    rail.on("x", lambda _: None)
    rail.on("y", lambda _: None)
    rail.emit("x")

    assert rail.get_stats() == {
        "name": "test-rail",
        "modules": 1,
        "events": 2,
        "total_listeners": 3,
        # attach notification + explicit emit
        "events_emitted": 2,
    }


def test_debug_mode_toggle(rail):
    assert rail.debug is False
    rail.set_debug(True)
    assert rail.debug is True
    rail.on("x", lambda _: None, "traced")
    assert rail.emit("x") == 1
    assert rail.emit("nobody.listens") == 0


# Construction


def test_create_applies_options_and_overrides():
    rail = create(RailOptions(name="from-options", clone=False), debug=True)
    assert rail.name == "from-options"
    assert rail.clone is False
    assert rail.debug is True


def test_create_defaults():
    rail = create()
    assert rail.name == "rail-app"
    assert rail.clone is True
    assert rail.debug is False


def test_create_rejects_unknown_options():
    with pytest.raises(TypeError):
        create(colour="blue")


def test_instances_are_isolated():
    first, second = create(name="one"), create(name="two")
    first.on("x", lambda _: None)
    assert second.emit("x") == 0
