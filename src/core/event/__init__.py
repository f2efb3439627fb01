"""
In-process event bus.

    from src.core.event import EventBus, ListenerPriority
"""

from src.core.event.bus import EventBus
from src.core.event.router import EventRouter
from src.core.event.types import CallbackType, EventListener, EventPayload, ListenerPriority

__all__ = [
    "CallbackType",
    "EventBus",
    "EventListener",
    "EventPayload",
    "EventRouter",
    "ListenerPriority",
]
