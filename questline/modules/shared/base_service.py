"""
Base Service Foundation

Purpose
-------
Common base for the engine's domain services: structured logging with
operation context, config access, event emission and input validation.

What this class does NOT do:
- Manage database transactions (that's DatabaseService's job)
- Know about any external collaborator

Usage
-----
    class StreakTracker(BaseService):
        def __init__(self, repository, reward_distributor, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from logging import Logger

    from questline.core.config.manager import ConfigManager
    from questline.core.event.bus import EventBus


class BaseService:
    """
    Args:
        config_manager: Configuration manager (class or instance)
        event_bus: Event bus for lifecycle events
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(self, key: str, default: Optional[Any] = None, required: bool = False) -> Any:
        """
        Retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        from questline.core.exceptions import ConfigurationError

        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(key, f"Required configuration key '{key}' is missing")
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        self.log.error(
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )

    def validate_learner_id(self, learner_id: str) -> None:
        """
        Raises:
            ValidationError: If learner_id is not a non-empty string
        """
        from .exceptions import ValidationError

        if not isinstance(learner_id, str) or not learner_id.strip():
            raise ValidationError("learner_id", f"learner_id must be a non-empty string, got {learner_id!r}")
