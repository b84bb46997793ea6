"""
Event management system for CamPush.

This module provides the observer hooks a UI or CLI uses to follow publisher
state: source list changes, publisher status text and per-stream states.
"""

import threading
from typing import Any, Callable, Dict, List
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Enumeration of supported event types."""
    ON_SOURCES_CHANGED = "on_sources_changed"
    ON_PUBLISHER_STATUS = "on_publisher_status"
    ON_STREAM_STATE = "on_stream_state"


_VALID_TYPES = [e.value for e in EventType]


def _validate(event_type: str) -> None:
    if event_type not in _VALID_TYPES:
        raise ValueError(f"Invalid event type '{event_type}'. Must be one of: {_VALID_TYPES}")


class EventManager:
    """
    Thread-safe event manager for publisher observers.

    Provides subscription-based event handling with support for multiple
    callbacks per event type. A failing callback is logged and does not stop
    the remaining callbacks.
    """

    def __init__(self):
        """Initialize the event manager with empty subscriber lists."""
        self._subscribers: Dict[str, List[Callable]] = {t: [] for t in _VALID_TYPES}
        self._lock = threading.RLock()

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """
        Subscribe a callback function to an event type.

        Args:
            event_type: The type of event to subscribe to (must be a valid EventType)
            callback: The function to call when the event is emitted

        Raises:
            ValueError: If event_type is not a valid EventType
            TypeError: If callback is not callable
        """
        if not callable(callback):
            raise TypeError("Callback must be callable")
        _validate(event_type)

        with self._lock:
            if callback not in self._subscribers[event_type]:
                self._subscribers[event_type].append(callback)
                logger.debug(f"Subscribed callback to {event_type}")

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        """
        Unsubscribe a callback function from an event type.

        Raises:
            ValueError: If event_type is not a valid EventType
        """
        _validate(event_type)

        with self._lock:
            if callback in self._subscribers[event_type]:
                self._subscribers[event_type].remove(callback)
                logger.debug(f"Unsubscribed callback from {event_type}")

    def emit(self, event_type: str, *args: Any) -> None:
        """
        Emit an event to all subscribed callbacks.

        Args:
            event_type: The type of event to emit
            *args: Positional data passed to every callback

        Raises:
            ValueError: If event_type is not a valid EventType
        """
        _validate(event_type)

        # Copy so callbacks run without holding the lock
        with self._lock:
            callbacks = self._subscribers[event_type].copy()

        for callback in callbacks:
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Error in event callback for {event_type}: {e}")

    def get_subscriber_count(self, event_type: str) -> int:
        """Get the number of subscribers for a given event type."""
        _validate(event_type)

        with self._lock:
            return len(self._subscribers[event_type])

    def clear_subscribers(self, event_type: str = None) -> None:
        """
        Clear all subscribers for a specific event type or all event types.

        Args:
            event_type: The event type to clear. If None, clears all event types.
        """
        if event_type is not None:
            _validate(event_type)
            with self._lock:
                self._subscribers[event_type].clear()
        else:
            with self._lock:
                for event_list in self._subscribers.values():
                    event_list.clear()
        logger.debug(f"Cleared subscribers for {event_type or 'all event types'}")
