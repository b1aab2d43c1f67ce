import pytest
from chatbridge.bus import EventBus
from chatbridge.domain.models import EventType

@pytest.mark.asyncio
async def test_emit_reaches_every_subscriber_in_order():
    bus = EventBus()
    a, b = bus.subscribe(), bus.subscribe()
    await bus.emit("qr", {"qr": "2@abc"})
    await bus.emit("ready", {})

    for sub in (a, b):
        first, second = sub.queue.get_nowait(), sub.queue.get_nowait()
        assert (first.type, first.payload) == (EventType.qr, {"qr": "2@abc"})
        assert second.type == EventType.ready
        assert second.seq == first.seq + 1

@pytest.mark.asyncio
async def test_slow_subscriber_drops_oldest():
    bus = EventBus(max_queue_size=2)
    sub = bus.subscribe()
    for i in range(3):
        await bus.emit("message", {"chatId": "1@s.whatsapp.net", "from": "1@s.whatsapp.net", "body": str(i)})
    assert [sub.queue.get_nowait().payload["body"] for _ in range(2)] == ["1", "2"]

@pytest.mark.asyncio
async def test_unsubscribed_gets_nothing():
    bus = EventBus()
    sub = bus.subscribe()
    bus.unsubscribe(sub)
    await bus.emit("disconnected", {"reason": "connection_closed"})
    assert sub.queue.empty()
