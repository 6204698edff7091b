"""EventEmitter tests."""

from flagkit import (
    ConnectionEvent,
    ErrorEvent,
    EventChannel,
    EventEmitter,
    ReadyEvent,
    RuntimeEvent,
    UpdateEvent,
)


async def test_publish_to_channel_subscribers() -> None:
    emitter = EventEmitter()
    ready: list[RuntimeEvent] = []
    updates: list[RuntimeEvent] = []
    emitter.subscribe(EventChannel.READY, ready.append)
    emitter.subscribe(EventChannel.UPDATE, updates.append)

    await emitter.publish(ReadyEvent(flag_count=3))

    assert len(ready) == 1
    assert ready[0].flag_count == 3
    assert updates == []


async def test_async_handler_is_awaited() -> None:
    emitter = EventEmitter()
    received: list[bool] = []

    async def handler(event: RuntimeEvent) -> None:
        received.append(event.connected)

    emitter.subscribe(EventChannel.CONNECTION, handler)
    await emitter.publish(ConnectionEvent(connected=True))
    assert received == [True]


async def test_failing_handler_does_not_stop_delivery() -> None:
    emitter = EventEmitter()
    received: list[RuntimeEvent] = []

    def broken(event: RuntimeEvent) -> None:
        raise RuntimeError("handler bug")

    emitter.subscribe(EventChannel.ERROR, broken)
    emitter.subscribe(EventChannel.ERROR, received.append)
    await emitter.publish(ErrorEvent(error=ValueError("x")))
    assert len(received) == 1


async def test_unsubscribe_is_idempotent() -> None:
    emitter = EventEmitter()
    received: list[RuntimeEvent] = []
    subscription = emitter.subscribe(EventChannel.UPDATE, received.append)
    assert subscription.active
    assert emitter.subscriber_count(EventChannel.UPDATE) == 1

    subscription.unsubscribe()
    subscription.unsubscribe()

    assert not subscription.active
    assert emitter.subscriber_count(EventChannel.UPDATE) == 0
    await emitter.publish(UpdateEvent())
    assert received == []


async def test_same_handler_twice_gets_two_subscriptions() -> None:
    emitter = EventEmitter()
    received: list[RuntimeEvent] = []
    first = emitter.subscribe(EventChannel.READY, received.append)
    emitter.subscribe(EventChannel.READY, received.append)
    first.unsubscribe()
    await emitter.publish(ReadyEvent())
    assert len(received) == 1


async def test_clear_deactivates_everything() -> None:
    emitter = EventEmitter()
    subscription = emitter.subscribe("ready", lambda event: None)
    assert subscription.channel is EventChannel.READY
    emitter.clear()
    assert not subscription.active
    assert emitter.subscriber_count(EventChannel.READY) == 0


def test_events_carry_timestamps() -> None:
    event = UpdateEvent(flags={})
    assert event.timestamp.tzinfo is not None
    assert event.channel is EventChannel.UPDATE
