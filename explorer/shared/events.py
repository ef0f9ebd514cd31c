"""
Typed event channels.

One :class:`EventChannel` per event name. Delivery is synchronous and in
subscription order; events published on one channel are delivered FIFO, and
an event published from inside a handler is queued until the current one has
reached every subscriber.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Callable, Deque, Dict, Iterable, List

from .logger import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], None]


class EventChannel:
    """Subscribe/publish pair for a single event name."""

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Handler] = []
        self._pending: Deque[Any] = deque()
        self._delivering = False

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register ``handler``. Returns a function that unsubscribes it."""
        self._handlers.append(handler)
        return lambda: self.unsubscribe(handler)

    def unsubscribe(self, handler: Handler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def publish(self, payload: Any = None) -> None:
        self._pending.append(payload)
        if self._delivering:
            return

        self._delivering = True
        try:
            while self._pending:
                event = self._pending.popleft()
                for handler in list(self._handlers):
                    handler(event)
        finally:
            self._delivering = False
            self._pending.clear()


class EventBus:
    """A fixed set of named channels."""

    def __init__(self, names: Iterable[str]):
        self._channels: Dict[str, EventChannel] = {n: EventChannel(n) for n in names}

    @property
    def names(self) -> List[str]:
        return list(self._channels)

    def channel(self, name: str) -> EventChannel:
        """Channel called ``name`` (KeyError if the bus does not define it)."""
        return self._channels[name]

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        return self._channels[name].subscribe(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        self._channels[name].unsubscribe(handler)

    def publish(self, name: str, payload: Any = None) -> None:
        logger.debug("Event %s", name)
        self._channels[name].publish(payload)
