"""
Tiered listener execution.

CRITICAL and HIGH listeners run one after another, each under its tier's
timeout. NORMAL listeners run concurrently and are awaited. LOW listeners are
scheduled as background tasks and never delay the publisher.

A failing or timed-out listener is logged and yields ``None``; it never
stops the remaining listeners.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Optional

from src.core.event.types import EventListener, EventPayload, ListenerPriority


class EventScheduler:
    """Runs listeners for one publish according to their priority."""

    def __init__(self) -> None:
        # Strong references keep LOW tasks alive until they finish.
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self.error_count = 0
        self.timeout_count = 0

    async def execute(
        self,
        *,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
        logger: Logger,
        critical_timeout: Optional[float],
        high_timeout: Optional[float],
    ) -> list[Any]:
        """Run ``listeners``; returns results of the awaited tiers."""
        results: list[Any] = []

        for listener in listeners:
            if listener.priority is ListenerPriority.CRITICAL:
                results.append(
                    await self._run_with_timeout(
                        listener, event_name, payload, logger, critical_timeout
                    )
                )
        for listener in listeners:
            if listener.priority is ListenerPriority.HIGH:
                results.append(
                    await self._run_with_timeout(
                        listener, event_name, payload, logger, high_timeout
                    )
                )

        normal = [lst for lst in listeners if lst.priority is ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *[self._run_listener(lst, event_name, payload, logger) for lst in normal]
                )
            )

        loop = asyncio.get_running_loop()
        for listener in listeners:
            if listener.priority is not ListenerPriority.LOW:
                continue
            task = loop.create_task(
                self._run_listener(listener, event_name, payload, logger),
                name=f"eventbus-low-{event_name}-{listener.identifier}",
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(listener, event_name, payload, logger)

        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload, logger),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self.timeout_count += 1
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
    ) -> Any:
        try:
            if inspect.iscoroutinefunction(listener.callback):
                return await listener.callback(payload)

            # Sync callbacks run in the default executor.
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, listener.callback, payload)
        except Exception as exc:
            self.error_count += 1
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
                exc_info=True,
            )
            return None

    async def drain(self) -> None:
        """Wait for outstanding LOW-tier tasks."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def get_background_task_count(self) -> int:
        return len(self._background_tasks)
