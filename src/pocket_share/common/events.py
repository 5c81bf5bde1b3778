"""Observer channel used by components to publish lifecycle events.

Components own an ``EventBus`` and publish named events on it; the GUI layer
(or anything else) subscribes without reaching into component internals.
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .logging import get_logger

logger = get_logger(__name__)

WILDCARD = "*"


@dataclass(frozen=True)
class Event:
    """A published event."""

    name: str
    payload: Any = None


EventCallback = Callable[[Event], Any]


def event_name(event: Any) -> str:
    """Normalise an event enum member or string to its wire name."""
    return str(event.value) if hasattr(event, "value") else str(event)


class EventBus:
    """Synchronous publish/subscribe channel keyed by event name."""

    def __init__(self, source: str = "") -> None:
        self.source = source
        self._subscribers: dict[str, list[EventCallback]] = defaultdict(list)
        self._pending: set[asyncio.Task[Any]] = set()

    def subscribe(self, event: str, callback: EventCallback) -> Callable[[], None]:
        """Register ``callback`` for ``event`` (or ``"*"`` for every event).

        Returns:
            A function that removes the subscription when called
        """
        self._subscribers[event_name(event)].append(callback)
        return lambda: self.unsubscribe(event, callback)

    def unsubscribe(self, event: str, callback: EventCallback) -> bool:
        """Remove a subscription.

        Returns:
            True if the callback was subscribed
        """
        callbacks = self._subscribers.get(event_name(event), [])
        if callback in callbacks:
            callbacks.remove(callback)
            return True
        return False

    def subscriber_count(self, event: str | None = None) -> int:
        """Number of subscriptions for one event, or all of them."""
        if event is not None:
            return len(self._subscribers.get(event_name(event), []))
        return sum(len(callbacks) for callbacks in self._subscribers.values())

    def emit(self, event: str, payload: Any = None) -> None:
        """Deliver an event to its subscribers and to wildcard subscribers.

        Callback failures are logged and never propagate to the emitter.
        Coroutine results are scheduled on the running loop.
        """
        name = event_name(event)
        message = Event(name=name, payload=payload)
        callbacks = list(self._subscribers.get(name, [])) + list(
            self._subscribers.get(WILDCARD, [])
        )

        for callback in callbacks:
            try:
                result = callback(message)
                if inspect.isawaitable(result):
                    self._schedule(result)
            except Exception as e:
                logger.error(
                    "Event subscriber failed",
                    source=self.source,
                    event_name=name,
                    error=str(e),
                )

    def _schedule(self, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def clear(self) -> None:
        """Drop every subscription."""
        self._subscribers.clear()
