"""
Event payload, listener priority and listener record types.

How each priority runs on publish:

- CRITICAL / HIGH: one at a time, awaited, each bounded by a timeout
- NORMAL: concurrently via gather, awaited
- LOW: scheduled as background tasks, not awaited

Progression events are published after their transaction commits, so every
listener sees committed state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

EventPayload = dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


class ListenerPriority(Enum):
    """Lower value runs earlier."""

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100

    @property
    def is_sequential(self) -> bool:
        return self in (ListenerPriority.CRITICAL, ListenerPriority.HIGH)


@dataclass(frozen=True)
class EventListener:
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def for_event(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> EventListener:
        """Identifier defaults to ``module.qualname@event_name``."""
        if identifier is None:
            name = getattr(callback, "__qualname__", None) or getattr(
                callback, "__name__", type(callback).__name__
            )
            identifier = f"{getattr(callback, '__module__', 'unknown')}.{name}@{event_name}"
        return cls(callback, priority, identifier, once)


__all__ = ["CallbackType", "EventListener", "EventPayload", "ListenerPriority"]
