import asyncio
import uuid

import pytest

from app.realtime.bus import EventBus, QueuedConnection, fan_out

pytestmark = pytest.mark.anyio


class FakeConnection:
    def __init__(self):
        self.frames = []

    def deliver(self, frame):
        self.frames.append(frame)
        return True


async def test_notify_reaches_every_connection_in_the_room():
    bus = EventBus()
    user = uuid.uuid4()
    phone, laptop = FakeConnection(), FakeConnection()
    await bus.join(user, phone)
    await bus.join(user, laptop)

    delivered = await bus.notify(user, "postCreated", {"id": "p1"})

    assert delivered == 2
    assert bus.room_size(user) == 2
    for conn in (phone, laptop):
        assert conn.frames == [{"event": "postCreated", "data": {"id": "p1"}}]


async def test_notify_without_listeners_is_dropped():
    bus = EventBus()
    assert await bus.notify(uuid.uuid4(), "message", {}) == 0


async def test_leave_removes_connection_and_empty_room():
    bus = EventBus()
    user = uuid.uuid4()
    conn = FakeConnection()
    await bus.join(user, conn)

    await bus.leave(conn)
    await bus.leave(conn)

    assert bus.room_size(user) == 0
    assert bus.room_of(conn) is None
    assert await bus.notify(user, "message", {}) == 0
    assert conn.frames == []


async def test_joining_again_moves_the_connection():
    bus = EventBus()
    first, second = uuid.uuid4(), uuid.uuid4()
    conn = FakeConnection()

    await bus.join(first, conn)
    await bus.join(second, conn)

    assert bus.room_of(conn) == second
    assert bus.room_size(first) == 0
    await bus.notify(first, "message", {"n": 1})
    await bus.notify(second, "message", {"n": 2})
    assert [f["data"]["n"] for f in conn.frames] == [2]


async def test_fan_out_notifies_each_user_once_and_swallows_failures():
    class Flaky:
        def __init__(self):
            self.calls = []

        async def notify(self, user_id, event, payload):
            self.calls.append(user_id)
            if len(self.calls) == 1:
                raise RuntimeError("socket went away")
            return 1

    a, b = uuid.uuid4(), uuid.uuid4()
    notifier = Flaky()

    await fan_out(notifier, [a, b, a, b], "postCreated", {})

    assert notifier.calls == [a, b]


async def test_queued_connection_writes_in_delivery_order():
    sent = []
    done = asyncio.Event()

    async def send(frame):
        sent.append(frame["data"])
        if len(sent) == 3:
            done.set()

    conn = QueuedConnection(send, outbox_size=8)
    for n in range(3):
        assert conn.deliver({"event": "message", "data": n})

    writer = asyncio.create_task(conn.run_writer())
    await asyncio.wait_for(done.wait(), timeout=1)
    writer.cancel()

    assert sent == [0, 1, 2]


async def test_queued_connection_drops_when_outbox_is_full():
    async def send(frame):
        pass

    conn = QueuedConnection(send, outbox_size=1)
    assert conn.deliver({"event": "message", "data": 1}) is True
    assert conn.deliver({"event": "message", "data": 2}) is False


async def test_writer_stops_when_send_fails():
    async def send(frame):
        raise ConnectionError("closed")

    conn = QueuedConnection(send)
    conn.deliver({"event": "message", "data": 1})

    await asyncio.wait_for(conn.run_writer(), timeout=1)
