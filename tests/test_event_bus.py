import uuid
from datetime import datetime, timedelta, timezone

from src.common.events import DomainEvent, EventBus, EventType


def _event(event_type=EventType.RIDE_ACCEPTED, *user_ids, **kwargs):
    return DomainEvent(type=event_type, ride_id=uuid.uuid4(), user_ids=list(user_ids), **kwargs)


async def test_subscribers_only_see_their_own_events():
    bus = EventBus(queue_size=10)
    alice, bob = uuid.uuid4(), uuid.uuid4()

    async with bus.subscribe(user_id=alice) as subscription:
        bus.publish(_event(EventType.RIDE_ACCEPTED, bob))
        bus.publish(_event(EventType.RIDE_ACCEPTED, alice, bob))

        received = await subscription.get()
        assert alice in received.user_ids
        assert subscription.queue.empty()


async def test_event_type_filter():
    bus = EventBus(queue_size=10)
    user = uuid.uuid4()

    async with bus.subscribe(user_id=user, event_types=[EventType.RIDE_COMPLETED]) as subscription:
        bus.publish(_event(EventType.STAGE_ADVANCED, user))
        bus.publish(_event(EventType.RIDE_COMPLETED, user))

        assert (await subscription.get()).type == EventType.RIDE_COMPLETED
        assert subscription.queue.empty()


async def test_slow_subscriber_loses_oldest_events():
    bus = EventBus(queue_size=2)

    async with bus.subscribe() as subscription:
        events = [_event() for _ in range(3)]
        bus.publish_all(events)

        assert [await subscription.get(), await subscription.get()] == events[1:]


async def test_subscription_is_removed_on_exit():
    bus = EventBus(queue_size=2)

    async with bus.subscribe():
        assert bus.subscriber_count == 1
    assert bus.subscriber_count == 0

    bus.publish(_event())


def test_staleness_window():
    now = datetime.now(timezone.utc)
    event = _event(occurred_at=now - timedelta(seconds=11))

    assert event.is_stale(max_age_seconds=10, now=now)
    assert not event.is_stale(max_age_seconds=30, now=now)
    assert not _event().is_stale(max_age_seconds=10)
