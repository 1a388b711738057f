"""
Scoped event bus for points/progress notifications.

Each TaskService owns (or is handed) one EventBus; display code subscribes
to the bus of the service it talks to. Nothing is broadcast process-wide.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Type

logger = logging.getLogger("points_tracker.events")


@dataclass(frozen=True)
class PointsChanged:
    """Day aggregate was recomputed"""
    day_id: int
    points: int


@dataclass(frozen=True)
class ProgressChanged:
    """Day progress fraction changed (0.0 - 1.0)"""
    day_id: int
    progress: float


Listener = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event class"""

    def __init__(self):
        self._listeners: Dict[Type, List[Listener]] = defaultdict(list)

    def subscribe(self, event_type: Type, callback: Listener) -> Callable[[], None]:
        """
        Register a callback for an event type.

        Args:
            event_type: Event class (e.g. PointsChanged)
            callback: Called with the event instance

        Returns:
            Function that removes the subscription
        """
        self._listeners[event_type].append(callback)
        logger.debug(f"Subscribed {callback!r} to {event_type.__name__}")

        def unsubscribe() -> None:
            listeners = self._listeners.get(event_type, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def publish(self, event: Any) -> None:
        """
        Deliver an event to its listeners in subscription order.

        A failing listener is logged and skipped; the mutation that produced
        the event has already been committed.
        """
        listeners = list(self._listeners.get(type(event), []))
        logger.debug(f"Publishing {event!r} to {len(listeners)} listener(s)")

        for callback in listeners:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Listener {callback!r} failed for {type(event).__name__}")

    def listener_count(self, event_type: Type) -> int:
        return len(self._listeners.get(event_type, []))
