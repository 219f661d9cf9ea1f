# src/common/events/__init__.py
"""Domain events emitted by the ride lifecycle."""

from .event_bus import DomainEvent, EventBus, EventType, Subscription, event_bus

__all__ = ["DomainEvent", "EventBus", "EventType", "Subscription", "event_bus"]
