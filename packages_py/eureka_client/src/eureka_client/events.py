"""
Lifecycle signals emitted by the lease manager
"""
import logging
from enum import Enum
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class LifecycleEvent(str, Enum):
    """Closed set of lifecycle transitions"""
    STARTED = "started"
    REGISTERED = "registered"
    DEREGISTERED = "deregistered"
    HEARTBEAT = "heartbeat"
    REGISTRY_UPDATED = "registryUpdated"


LifecycleListener = Callable[[LifecycleEvent], None]


class EventBus:
    """
    Subscriber registry for lifecycle events.

    Example:
        bus = EventBus()
        unsubscribe = bus.on(print, LifecycleEvent.REGISTERED)
        bus.emit(LifecycleEvent.REGISTERED)
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: List[Tuple[LifecycleListener, Optional[frozenset]]] = []

    def on(self, listener: LifecycleListener, *events: LifecycleEvent) -> Callable[[], None]:
        """
        Add a listener for the given events (all events when none are given).

        Returns:
            Function to remove the listener
        """
        entry = (listener, frozenset(events) if events else None)
        self._listeners.append(entry)
        return lambda: self._listeners.remove(entry) if entry in self._listeners else None

    def off(self, listener: LifecycleListener) -> None:
        """Remove every subscription of a listener."""
        self._listeners = [entry for entry in self._listeners if entry[0] != listener]

    def emit(self, event: LifecycleEvent) -> None:
        for listener, events in list(self._listeners):
            if events is not None and event not in events:
                continue
            try:
                listener(event)
            except Exception:
                logger.exception(f"Lifecycle listener failed for event {event.value}")
