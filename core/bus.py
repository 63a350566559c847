"""
In-process event bus for a FrameLink agent.

Carries results and lifecycle events (InferenceCompleted, ResourceAcquired,
ShutdownRequested) from an agent's service loop to its sinks. Handlers run
synchronously on the publisher's thread.
"""
import threading
from collections import defaultdict
from typing import Callable, Any, Dict, List, Type

from utils.logger import Logger


class EventBus:
    """
    Simple publish/subscribe event bus.

    Usage:
        bus = EventBus()
        bus.subscribe(InferenceCompleted, sink.on_result)
        bus.publish(InferenceCompleted(outputs=[...]))
    """

    def __init__(self):
        self._subscribers: Dict[Type, List[Callable]] = defaultdict(list)
        self._lock = threading.RLock()
        self.logger = Logger("EventBus")

    def subscribe(self, event_type: Type, handler: Callable[[Any], None]) -> None:
        """Register a handler for a specific event type."""
        with self._lock:
            self._subscribers[event_type].append(handler)
            self.logger.debug(f"Subscribed {handler.__qualname__} to {event_type.__name__}")

    def unsubscribe(self, event_type: Type, handler: Callable[[Any], None]) -> None:
        """Remove a handler from a specific event type."""
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Any) -> None:
        """
        Publish an event to all registered handlers.

        A failing sink must not stall the service loop, so an exception in one
        handler is logged and the remaining handlers still run.
        """
        event_type = type(event)
        with self._lock:
            handlers = list(self._subscribers.get(event_type, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(
                    f"Error in handler {handler.__qualname__} for "
                    f"{event_type.__name__}: {e}"
                )

    def clear(self) -> None:
        """Remove all subscriptions."""
        with self._lock:
            self._subscribers.clear()
