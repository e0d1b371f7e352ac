"""Async publish/subscribe for engine lifecycle events."""

from questline.core.event.bus import EventBus
from questline.core.event.types import CallbackType, EventListener, EventPayload, ListenerPriority

__all__ = ["EventBus", "EventListener", "EventPayload", "ListenerPriority", "CallbackType"]
