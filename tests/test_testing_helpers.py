import pytest

from rail import ERROR_EVENT
from rail.testing import RecordingRail


def test_records_emissions_with_cloned_payloads(recording_rail):
    payload = {"count": 1}
    recording_rail.emit("counted", payload)
    payload["count"] = 2

    entry = recording_rail.last_emitted("counted")
    assert entry.payload == {"count": 1}
    assert recording_rail.was_emitted("counted")
    assert not recording_rail.was_emitted("other")


def test_records_error_events(recording_rail):
    def broken(_):
        raise RuntimeError("recorded failure")

    recording_rail.on("x", broken, "broken")
    recording_rail.emit("x")

    errors = recording_rail.emitted(ERROR_EVENT)
    assert len(errors) == 1
    assert errors[0].payload["module"] == "broken"


def test_clear_emitted(recording_rail):
    recording_rail.emit("a")
    recording_rail.clear_emitted()
    assert recording_rail.emitted_events == []
    assert recording_rail.last_emitted("a") is None


def test_behaves_like_a_rail():
    rail = RecordingRail(name="recorder", clone=False)
    received = []
    rail.on("x", received.append)
    payload = {"shared": True}

    assert rail.emit("x", payload) == 1
    assert received[0] is payload
    assert rail.get_stats()["name"] == "recorder"


@pytest.mark.asyncio
async def test_records_async_emissions(recording_rail):
    recording_rail.on("job", lambda data: data["n"])
    results = await recording_rail.emit_async("job", {"n": 3})

    assert results[0].result == 3
    assert recording_rail.last_emitted("job").payload == {"n": 3}


@pytest.mark.asyncio
async def test_records_default_async_payload(recording_rail):
    await recording_rail.emit_async("empty")
    assert recording_rail.last_emitted("empty").payload == {}
