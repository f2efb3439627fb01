"""
Base Service

Common plumbing for Apex services: the injected ConfigManager and EventBus,
a structured logger, and argument checks that raise `ValidationError`.

Services own their transaction boundaries through an injected store and
publish events only after commit. Progression rules live in the subclasses.

Usage
-----
    class ProgressionService(BaseService):
        def __init__(self, store, tables, config_manager, event_bus):
            super().__init__(config_manager, event_bus, get_logger(__name__))
            self._store = store
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.exceptions import ConfigurationError

from .exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class BaseService:
    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    # ========================================================================
    # Configuration & events
    # ========================================================================

    def get_config(self, key: str, default: Optional[Any] = None, required: bool = False) -> Any:
        """
        Dot-path lookup in the loaded configuration.

        Raises:
            ConfigurationError: `required` is set and the key is absent
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(key, "required key is missing")
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = dict(data)
        if context:
            payload.update(context)
        await self._events.publish(event_type, payload)

    # ========================================================================
    # Logging
    # ========================================================================

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

    # ========================================================================
    # Argument checks
    # ========================================================================

    def validate_int(self, value: Any, name: str) -> None:
        if not _is_int(value):
            raise ValidationError(name, f"{name} must be an integer, got {value!r}")

    def validate_positive_int(self, value: Any, name: str) -> None:
        """Ids and counts: integers > 0, booleans rejected."""
        if not _is_int(value) or value <= 0:
            raise ValidationError(name, f"{name} must be a positive integer, got {value!r}")

    def validate_range(self, value: int, name: str, min_val: int, max_val: int) -> None:
        """Inclusive on both ends."""
        if not min_val <= value <= max_val:
            raise ValidationError(
                name, f"{name} must be between {min_val} and {max_val}, got {value}"
            )
