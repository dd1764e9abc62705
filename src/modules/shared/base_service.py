"""
Base Service Foundation

Purpose
-------
Provides the foundational class for Questline domain services. Services
implement business logic, enforce business rules, and emit domain events.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access patterns
- Event emission helpers
- Validation error wrapping

What this class does NOT do:
- Manage store transactions (that's the DocumentStore's job)
- Wrap infrastructure services

Usage
-----
    class ProgressionService(BaseService):
        def __init__(self, store, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._store = store
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Tunable configuration access (class or instance)
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Safely retrieve configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        from src.core.exceptions import ConfigurationError

        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    def get_positive_int_config(self, key: str, default: int) -> int:
        """
        Retrieve a positive integer tunable.

        Raises:
            ConfigurationError: If the configured value is not a positive int
        """
        from src.core.exceptions import ConfigurationError

        value = self._config.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigurationError(
                key, f"expected a positive integer, got {value!r}"
            )
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Emit a domain event for cross-module communication.

        Args:
            event_type: Type/name of the event
            data: Event payload data
            context: Optional additional context (user_id, quest_id, etc.)
        """
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        """Log a service operation with structured context."""
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: BaseException,
        level: str = "error",
        **context: Any,
    ) -> None:
        """
        Log a service error with full context.

        Args:
            operation: Name of the operation that failed
            error: The exception that occurred
            level: Logger method to use ("warning", "error", ...)
            **context: Additional context data
        """
        getattr(self.log, level)(
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )

    def validate_positive_int(self, value: Any, name: str) -> None:
        """
        Validate that a value is a positive integer (booleans rejected).

        Raises:
            ValidationError: If value is not positive
        """
        from .exceptions import ValidationError

        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(
                name, f"{name} must be a positive integer, got {value!r}"
            )

    def validate_non_negative_int(self, value: Any, name: str) -> None:
        """
        Validate that a value is a non-negative integer.

        Raises:
            ValidationError: If value is negative
        """
        from .exceptions import ValidationError

        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                name, f"{name} must be a non-negative integer, got {value!r}"
            )
