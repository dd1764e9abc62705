"""
Event bus types.

Priority Levels
---------------
- CRITICAL (0): sequential, awaited, timeout-protected
- HIGH (10): sequential, awaited, timeout-protected
- NORMAL (50): concurrent, awaited
- LOW (100): fire-and-forget background task
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

EventPayload = dict[str, Any]


class ListenerPriority(Enum):
    """Listener tier. Lower values run first."""

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


@dataclass(slots=True, frozen=True)
class EventListener:
    """
    A registered listener.

    ``once`` listeners are removed from the bus before their first run.
    """

    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        if identifier is None:
            module = getattr(callback, "__module__", "unknown")
            qualname = getattr(
                callback, "__qualname__", getattr(callback, "__name__", "callback")
            )
            identifier = f"{module}.{qualname}@{event_name}"

        return cls(
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )
