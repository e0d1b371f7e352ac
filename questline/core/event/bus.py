"""
In-process async EventBus.

Publishes engine lifecycle events (``quest.generated``, ``quest.completed``,
``streak.milestone_claimed`` ...) to subscribers without coupling the
engine to them.

- Exact and wildcard subscriptions (``"quest.*"``, ``"*"``).
- Tiered execution by ListenerPriority (see ``types``).
- Error isolation: a failing listener is logged and never affects other
  listeners or the publisher.
"""

from __future__ import annotations

import asyncio
import fnmatch
import inspect
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set

from questline.core.event.types import CallbackType, EventListener, EventPayload, ListenerPriority
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("quest.completed", on_completed, priority=ListenerPriority.HIGH)
    >>> await bus.publish("quest.completed", {"learner_id": "l-1", "quest_id": "q-1"})
    """

    def __init__(self, *, listener_timeout_seconds: float = 5.0) -> None:
        self._listeners: Dict[str, List[EventListener]] = defaultdict(list)
        self._timeout = float(listener_timeout_seconds)
        self._background_tasks: Set[asyncio.Task[Any]] = set()

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return
        if len(sig.parameters) != 1:
            name = getattr(callback, "__qualname__", repr(callback))
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(sig.parameters)} parameters for '{name}'"
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
    ) -> str:
        """Register ``callback`` for an event name or wildcard pattern."""
        self._validate_callback_signature(callback)
        listener = EventListener.from_callback(event_name, callback, priority, identifier, once)

        existing = self._listeners[event_name]
        if any(item.identifier == listener.identifier for item in existing):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        existing.append(listener)
        existing.sort(key=lambda item: item.priority.value)
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        listeners = self._listeners.get(event_name, [])
        remaining = [item for item in listeners if item.identifier != identifier]
        self._listeners[event_name] = remaining
        return len(remaining) != len(listeners)

    def clear(self) -> None:
        self._listeners.clear()

    def listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return sum(len(items) for items in self._listeners.values())
        return len(self._listeners.get(event_name, []))

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    def _extract_listeners(self, event_name: str) -> List[EventListener]:
        matched: List[EventListener] = []
        for pattern, listeners in self._listeners.items():
            if pattern != event_name and not fnmatch.fnmatchcase(event_name, pattern):
                continue
            matched.extend(listeners)
            once_ids = {item.identifier for item in listeners if item.once}
            if once_ids:
                self._listeners[pattern] = [item for item in listeners if item.identifier not in once_ids]
        matched.sort(key=lambda item: item.priority.value)
        return matched

    async def _run_listener(self, event_name: str, listener: EventListener, payload: EventPayload) -> Any:
        try:
            result = listener.callback(payload)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            logger.error(
                "EventBus: listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    async def _run_with_timeout(self, event_name: str, listener: EventListener, payload: EventPayload) -> Any:
        try:
            return await asyncio.wait_for(self._run_listener(event_name, listener, payload), self._timeout)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus: listener timed out",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "timeout_seconds": self._timeout,
                },
            )
            return None

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Deliver ``data`` to every matching listener.

        Returns the results of CRITICAL/HIGH/NORMAL listeners; LOW listeners
        run in the background and are not awaited.
        """
        listeners = self._extract_listeners(event_name)
        if not listeners:
            return []

        results: List[Any] = []
        sequential = [l for l in listeners if l.priority in (ListenerPriority.CRITICAL, ListenerPriority.HIGH)]
        concurrent = [l for l in listeners if l.priority is ListenerPriority.NORMAL]
        background = [l for l in listeners if l.priority is ListenerPriority.LOW]

        for listener in sequential:
            results.append(await self._run_with_timeout(event_name, listener, data))

        if concurrent:
            results.extend(
                await asyncio.gather(*(self._run_with_timeout(event_name, l, data) for l in concurrent))
            )

        for listener in background:
            task = asyncio.create_task(self._run_listener(event_name, listener, data))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return results

    async def drain(self) -> None:
        """Wait for outstanding LOW-priority listeners."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))
