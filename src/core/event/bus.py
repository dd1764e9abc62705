"""
Async publish/subscribe for Questline.

Services publish domain notifications (``quest.completed``,
``progression.leveled_up``, ``quest.board_generated``) after their state
change has been committed. Listeners are side effects only: a failing or
slow listener is logged and never changes what the publisher already did.

Execution Tiers
---------------
- CRITICAL: sequential, ordered, awaited with timeout
- HIGH: sequential, ordered, awaited with timeout
- NORMAL: concurrent (gather), awaited
- LOW: fire-and-forget background tasks

Timeouts come from ``core.event.listener_timeout.critical_seconds`` and
``core.event.listener_timeout.high_seconds`` (default 5 seconds).

Subscriptions may use wildcard patterns such as ``quest.*``.
"""

from __future__ import annotations

import inspect
from collections import defaultdict
from typing import Any, Optional

from src.core.config.manager import ConfigManager
from src.core.event.router import matching_patterns
from src.core.event.scheduler import EventScheduler
from src.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from src.core.logging.logger import LogContext, get_log_context, get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Tiered async event bus.

    Designed for single-threaded asyncio use; registry mutations happen
    between awaits.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("quest.completed", on_completed, priority=ListenerPriority.HIGH)
    >>> await bus.publish("quest.completed", {"user_id": "user_000001", "quest_id": "q1"})
    """

    def __init__(
        self,
        config_manager: Optional[type[ConfigManager]] = None,
        scheduler: Optional[EventScheduler] = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._scheduler = scheduler or EventScheduler()
        self._listeners: dict[str, list[EventListener]] = defaultdict(list)
        self._published: dict[str, int] = defaultdict(int)

        self._critical_timeout = self._load_timeout(
            key="core.event.listener_timeout.critical_seconds",
            override=critical_timeout_seconds,
            default=5.0,
        )
        self._high_timeout = self._load_timeout(
            key="core.event.listener_timeout.high_seconds",
            override=high_timeout_seconds,
            default=5.0,
        )

        logger.info(
            "EventBus initialized",
            extra={
                "critical_timeout_seconds": self._critical_timeout,
                "high_timeout_seconds": self._high_timeout,
            },
        )

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: override, then config, then default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)

        value = self._config_manager.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid listener timeout in config, using default",
                extra={"config_key": key, "value": value, "default_value": default},
            )
            return float(default)

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """Listeners take exactly one argument: the payload."""
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or getattr(
                callback, "__name__", repr(callback)
            )
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Subscribe ``callback`` to an event name or wildcard pattern.

        Returns the listener identifier used by ``unsubscribe``. A second
        subscription with the same identifier is ignored unless
        ``allow_duplicates`` is set.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        existing = self._listeners[event_name]
        if not allow_duplicates and any(
            lst.identifier == listener.identifier for lst in existing
        ):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        existing.append(listener)
        # Stable sort keeps registration order within a tier.
        existing.sort(key=lambda lst: lst.priority.value)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        listeners = self._listeners.get(event_name)
        if not listeners:
            return False

        remaining = [lst for lst in listeners if lst.identifier != identifier]
        removed = len(remaining) != len(listeners)
        if remaining:
            self._listeners[event_name] = remaining
        else:
            del self._listeners[event_name]

        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        """Remove every listener."""
        total = self.get_listener_count()
        self._listeners.clear()
        logger.info(
            "EventBus: cleared all listeners",
            extra={"previous_listener_count": total},
        )

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    def _extract_listeners(self, event_name: str) -> list[EventListener]:
        """Collect listeners for an event and prune ``once`` listeners."""
        collected: list[EventListener] = []
        for key in matching_patterns(event_name, list(self._listeners.keys())):
            listeners = self._listeners[key]
            collected.extend(listeners)
            kept = [lst for lst in listeners if not lst.once]
            if kept:
                self._listeners[key] = kept
            else:
                del self._listeners[key]

        collected.sort(key=lambda lst: lst.priority.value)
        return collected

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event.

        Returns results from CRITICAL, HIGH and NORMAL listeners. LOW
        listeners run in the background and contribute nothing.
        """
        self._published[event_name] += 1
        listeners = self._extract_listeners(event_name)

        if not listeners:
            logger.debug(
                "EventBus: no listeners for event",
                extra={"event_name": event_name},
            )
            return []

        async with LogContext(
            user_id=data.get("user_id"),
            quest_id=data.get("quest_id"),
            component="event_bus",
            operation=event_name,
            correlation_id=get_log_context().get("correlation_id"),
        ):
            logger.debug(
                "EventBus: executing listeners",
                extra={"event_name": event_name, "listener_count": len(listeners)},
            )
            return await self._scheduler.execute(
                event_name=event_name,
                payload=data,
                listeners=listeners,
                logger=logger,
                critical_timeout=self._critical_timeout,
                high_timeout=self._high_timeout,
            )

    async def drain(self) -> None:
        """Wait for background (LOW) listeners to finish."""
        await self._scheduler.drain()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        """
        Listener count. With ``event_name``, counts listeners that would
        receive that event, wildcard subscriptions included.
        """
        if event_name:
            return sum(
                len(self._listeners[key])
                for key in matching_patterns(event_name, list(self._listeners.keys()))
            )
        return sum(len(listeners) for listeners in self._listeners.values())

    def get_all_events(self) -> list[str]:
        return sorted(self._listeners.keys())

    def get_metrics_summary(self) -> dict[str, Any]:
        total = sum(self._published.values())
        return {
            "total_events_published": total,
            "events_by_type": dict(self._published),
            "total_errors": self._scheduler.error_count,
            "total_timeouts": self._scheduler.timeout_count,
            "total_listeners": self.get_listener_count(),
            "background_tasks": self._scheduler.get_background_task_count(),
        }
