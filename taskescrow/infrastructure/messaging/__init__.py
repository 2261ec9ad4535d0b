"""Messaging infrastructure"""

from .event_bus import InMemoryEventBus, RedisEventBus

__all__ = ["InMemoryEventBus", "RedisEventBus"]
