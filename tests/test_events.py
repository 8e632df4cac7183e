import asyncio
from conftest import NOW
from core.events import EventBus
from model.job import JobEvent


def _event(status="started"):
    return JobEvent(jobId="job-1", status=status, timestamp=NOW)


def test_sync_and_async_observers_receive_events():
    bus = EventBus()
    plain, awaited = [], []

    async def async_observer(event):
        awaited.append(event.status)

    bus.subscribe(lambda e: plain.append(e.status))
    bus.subscribe(async_observer)
    asyncio.run(bus.emit(_event()))

    assert plain == ["started"]
    assert awaited == ["started"]


def test_failing_observer_is_isolated():
    bus = EventBus()
    seen = []

    def boom(event):
        raise ValueError("nope")

    bus.subscribe(boom)
    bus.subscribe(seen.append)
    asyncio.run(bus.emit(_event("failed")))
    assert [e.status for e in seen] == ["failed"]


def test_unsubscribe():
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe(seen.append)
    unsubscribe()
    unsubscribe()
    asyncio.run(bus.emit(_event()))
    assert seen == []
