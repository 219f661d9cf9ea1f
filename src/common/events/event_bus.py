# src/common/events/event_bus.py
"""
In-process domain event stream.

The ride services publish an event after every committed transition; any
number of subscribers (the SSE endpoint, tests, future dispatchers) receive
the events addressed to them. Publishing never blocks: each subscriber owns a
bounded queue and the oldest event is dropped when a slow consumer falls
behind.
"""

import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, FrozenSet, Iterable, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.common.config import settings

logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    RIDE_ACCEPTED = "ride.accepted"
    STAGE_ADVANCED = "ride.stage_advanced"
    COMPLETION_MARKED = "ride.completion_marked"
    RIDE_COMPLETED = "ride.completed"
    RIDE_CANCELLED = "ride.cancelled"
    NOTIFICATION_CREATED = "notification.created"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent(BaseModel):
    type: EventType
    ride_id: Optional[UUID] = None
    appointment_id: Optional[UUID] = None
    # Users the event concerns; subscribers filter on these
    user_ids: List[UUID] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=_utcnow)

    def is_stale(self, max_age_seconds: Optional[float] = None, now: Optional[datetime] = None) -> bool:
        """True when the event is older than the auto-surface window."""
        if max_age_seconds is None:
            max_age_seconds = settings.EVENT_STALE_SECONDS
        now = now or _utcnow()
        return now - self.occurred_at > timedelta(seconds=max_age_seconds)


class Subscription:
    def __init__(
        self,
        user_id: Optional[UUID],
        event_types: Optional[FrozenSet[EventType]],
        maxsize: int,
    ):
        self.user_id = user_id
        self.event_types = event_types
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    def matches(self, event: DomainEvent) -> bool:
        if self.event_types is not None and event.type not in self.event_types:
            return False
        if self.user_id is not None and self.user_id not in event.user_ids:
            return False
        return True

    def offer(self, event: DomainEvent) -> None:
        if self.queue.full():
            dropped = self.queue.get_nowait()
            logger.warning("Subscriber for %s fell behind; dropped %s", self.user_id, dropped.type.value)
        self.queue.put_nowait(event)

    async def get(self) -> DomainEvent:
        return await self.queue.get()

    def __aiter__(self) -> AsyncIterator[DomainEvent]:
        return self

    async def __anext__(self) -> DomainEvent:
        return await self.get()


class EventBus:
    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or settings.EVENT_QUEUE_SIZE
        self._subscriptions: List[Subscription] = []

    @asynccontextmanager
    async def subscribe(
        self,
        user_id: Optional[UUID] = None,
        event_types: Optional[Iterable[EventType]] = None,
    ) -> AsyncIterator[Subscription]:
        """Receive events for ``user_id`` (all users when None) until the block exits."""
        subscription = Subscription(
            user_id,
            frozenset(event_types) if event_types is not None else None,
            self.queue_size,
        )
        self._subscriptions.append(subscription)
        try:
            yield subscription
        finally:
            self._subscriptions.remove(subscription)

    def publish(self, event: DomainEvent) -> None:
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription.offer(event)
        logger.debug("Published %s for ride %s", event.type.value, event.ride_id)

    def publish_all(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            self.publish(event)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)


event_bus = EventBus()
