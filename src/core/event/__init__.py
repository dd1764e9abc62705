"""
Event system for Questline.

The process-wide ``event_bus`` is used by the command line; services accept
an ``EventBus`` instance so tests can supply their own.
"""

from .bus import EventBus
from .types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

event_bus = EventBus()

__all__ = [
    "event_bus",
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
]
