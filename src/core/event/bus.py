"""
Apex EventBus: async pub/sub with tiered listener execution.

The progression services publish after commit; activity feeds, celebration
screens and analytics subscribe by exact name or wildcard pattern
(``progression.*``). Delivery is best effort: `publish()` never raises
because of a listener, and a failing or slow listener never blocks the
others.

Execution per publish (see `ListenerPriority`):

1. CRITICAL listeners, one by one, each under ``critical_timeout_seconds``
2. HIGH listeners, one by one, each under ``high_timeout_seconds``
3. NORMAL listeners, gathered
4. LOW listeners, scheduled in the background; `drain()` awaits them

One bus per application; tests build their own.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Dict, List, Optional

from src.core.config.config import Config
from src.core.event.router import EventRouter
from src.core.event.types import CallbackType, EventListener, EventPayload, ListenerPriority
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


def _check_signature(callback: CallbackType) -> None:
    try:
        parameters = inspect.signature(callback).parameters
    except (TypeError, ValueError):
        return
    if len(parameters) != 1:
        name = getattr(callback, "__qualname__", repr(callback))
        raise ValueError(
            f"listener {name} must take exactly one argument (the payload), "
            f"takes {len(parameters)}"
        )


class EventBus:
    """
    >>> bus = EventBus()
    >>> bus.subscribe("progression.leveled_up", on_level_up, priority=ListenerPriority.HIGH)
    >>> await bus.publish("progression.leveled_up", {"athlete_id": 7, "new_level": "F4"})
    """

    def __init__(
        self,
        router: Optional[EventRouter] = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        default_timeout = float(Config.EVENT_LISTENER_TIMEOUT_SECONDS)
        self._router = router or EventRouter()
        self._listeners: Dict[str, List[EventListener]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._timeouts = {
            ListenerPriority.CRITICAL: critical_timeout_seconds or default_timeout,
            ListenerPriority.HIGH: high_timeout_seconds or default_timeout,
        }
        self._published = 0
        self._listener_errors = 0

    # ========================================================================
    # Subscriptions
    # ========================================================================

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Register `callback` for an event name or wildcard pattern.

        Subscribing the same identifier twice to the same name is a no-op.
        Returns the listener identifier.

        Raises:
            ValueError: empty name, or a callback not taking one argument
        """
        if not event_name:
            raise ValueError("event_name must be a non-empty string")
        _check_signature(callback)

        listener = EventListener.for_event(event_name, callback, priority, identifier, once)
        bucket = self._listeners.setdefault(event_name, [])
        if any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "Duplicate event listener ignored",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        logger.debug(
            "Event listener subscribed",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": priority.name,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        remaining = [listener for listener in bucket if listener.identifier != identifier]
        if len(remaining) == len(bucket):
            return False
        if remaining:
            self._listeners[event_name] = remaining
        else:
            del self._listeners[event_name]
        return True

    def clear(self) -> None:
        self._listeners.clear()

    def listener_count(self) -> int:
        return sum(len(bucket) for bucket in self._listeners.values())

    def _take_listeners(self, event_name: str) -> List[EventListener]:
        """Matching listeners in priority order; one-shot listeners are removed."""
        matched: List[EventListener] = []
        for key in list(self._listeners):
            exact = key == event_name
            if not exact and not (self._router.is_pattern(key) and self._router.matches(event_name, key)):
                continue
            bucket = self._listeners[key]
            matched.extend(bucket)
            remaining = [listener for listener in bucket if not listener.once]
            if remaining:
                self._listeners[key] = remaining
            else:
                del self._listeners[key]

        matched.sort(key=lambda listener: listener.priority.value)
        return matched

    # ========================================================================
    # Publishing
    # ========================================================================

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Deliver `data` to every matching listener.

        Returns the results of CRITICAL, HIGH and NORMAL listeners in that
        order, with None for any listener that failed or timed out.
        """
        self._published += 1
        listeners = self._take_listeners(event_name)
        logger.debug(
            "Publishing event",
            extra={"event_name": event_name, "listener_count": len(listeners)},
        )

        results: List[Any] = []
        normal: List[EventListener] = []
        for listener in listeners:
            if listener.priority.is_sequential:
                results.append(await self._run_bounded(listener, event_name, data))
            elif listener.priority is ListenerPriority.NORMAL:
                normal.append(listener)
            else:
                task = asyncio.create_task(self._run(listener, event_name, data))
                self._background.add(task)
                task.add_done_callback(self._background.discard)

        if normal:
            results.extend(
                await asyncio.gather(*(self._run(listener, event_name, data) for listener in normal))
            )
        return results

    async def drain(self) -> None:
        """Wait for background (LOW) listeners to finish."""
        while self._background:
            await asyncio.gather(*list(self._background))

    async def _run_bounded(self, listener: EventListener, event_name: str, data: EventPayload) -> Any:
        timeout = self._timeouts[listener.priority]
        try:
            return await asyncio.wait_for(self._run(listener, event_name, data), timeout=timeout)
        except asyncio.TimeoutError:
            self._listener_errors += 1
            logger.error(
                "Event listener timed out",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run(self, listener: EventListener, event_name: str, data: EventPayload) -> Any:
        try:
            if inspect.iscoroutinefunction(listener.callback):
                return await listener.callback(data)
            result = await asyncio.get_running_loop().run_in_executor(None, listener.callback, data)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            self._listener_errors += 1
            logger.error(
                "Event listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    def get_stats(self) -> Dict[str, int]:
        return {
            "published": self._published,
            "listener_errors": self._listener_errors,
            "listeners": self.listener_count(),
            "background_tasks": len(self._background),
        }


__all__ = ["EventBus"]
