"""Event sinks for registry lifecycle events."""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Union

from module_registry.models.events import RegistryEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[RegistryEvent], Union[Awaitable[Any], Any]]


class EventSink(ABC):
    """Receives event records from the registry.

    Delivery is the sink's concern; the registry only hands records over.
    """

    @abstractmethod
    async def emit(self, event: RegistryEvent) -> None:
        """Accept one event.

        Args:
            event: Event record.
        """


class EventOutbox(EventSink):
    """Buffers events until a dispatcher drains them."""

    def __init__(self) -> None:
        self._events: list[RegistryEvent] = []

    async def emit(self, event: RegistryEvent) -> None:
        self._events.append(event)
        logger.debug(f"Queued event {event.type.value}")

    @property
    def pending(self) -> int:
        return len(self._events)

    def drain(self) -> list[RegistryEvent]:
        """Return and clear all buffered events, oldest first."""
        events, self._events = self._events, []
        return events


class CallbackEventSink(EventSink):
    """Forwards each event to a plain or async callable.

    Attributes:
        callback: Called with every event.
    """

    def __init__(self, callback: EventCallback) -> None:
        self.callback = callback

    async def emit(self, event: RegistryEvent) -> None:
        result = self.callback(event)
        if inspect.isawaitable(result):
            await result
