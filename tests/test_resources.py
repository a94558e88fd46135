import asyncio

import pytest

from ablycli.core.errors import AcquisitionError
from ablycli.core.resources import ResourceHandle, ResourceKind, acquire


async def test_release_runs_teardown_once():
    calls = []
    handle = ResourceHandle(ResourceKind.SUBSCRIPTION, "orders", lambda: calls.append("x"))

    await handle.release()
    await handle.release()
    await handle.release()

    assert calls == ["x"]
    assert handle.released


async def test_release_supports_async_teardown():
    calls = []

    async def teardown():
        await asyncio.sleep(0)
        calls.append("done")

    handle = ResourceHandle(ResourceKind.TIMER, "poll", teardown)
    await asyncio.gather(handle.release(), handle.release())

    assert calls == ["done"]


async def test_failed_release_is_not_retried():
    calls = []

    def teardown():
        calls.append("try")
        raise RuntimeError("detached")

    handle = ResourceHandle(ResourceKind.PRESENCE, "lobby", teardown)

    with pytest.raises(RuntimeError):
        await handle.release()
    await handle.release()

    assert calls == ["try"]
    assert handle.released


async def test_acquire_passes_setup_result_to_teardown():
    seen = []

    async def setup():
        return "channel-object"

    handle = await acquire(ResourceKind.SUBSCRIPTION, "orders", setup, seen.append)
    assert handle.kind is ResourceKind.SUBSCRIPTION
    assert handle.name == "orders"
    assert not handle.released

    await handle.release()
    assert seen == ["channel-object"]


async def test_acquire_wraps_setup_failure():
    def setup():
        raise ValueError("channel denied")

    with pytest.raises(AcquisitionError) as info:
        await acquire(ResourceKind.SUBSCRIPTION, "orders", setup, lambda _: None)

    assert "channel denied" in str(info.value)
    assert info.value.kind == "subscription"
    assert info.value.name == "orders"


async def test_acquire_timeout_becomes_acquisition_error():
    async def setup():
        await asyncio.sleep(5)

    with pytest.raises(AcquisitionError) as info:
        await acquire(ResourceKind.CONNECTION, "realtime", setup, lambda _: None, timeout=0.01)

    assert "Timed out" in str(info.value)


async def test_acquire_keeps_existing_acquisition_error():
    original = AcquisitionError("presence unsupported", kind="presence")

    def setup():
        raise original

    with pytest.raises(AcquisitionError) as info:
        await acquire(ResourceKind.PRESENCE, "lobby", setup, lambda _: None)

    assert info.value is original
