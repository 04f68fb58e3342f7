"""
Event system for ledger state changes.

Components record events while an operation runs; the executor publishes
them here only after the operation has been committed, so subscribers
never observe a rolled back change.
"""
from typing import Dict, List, Callable, Any
import logging

logger = logging.getLogger(__name__)

LEDGER_EVENTS = (
    "deposited",
    "withdrawn",
    "ejected",
    "boosted",
    "window_published",
    "claimed",
    "rewards_funded",
    "rewards_withdrawn",
    "config_updated",
    "approved",
    "op_applied",
    "op_failed",
)


class EventBus:
    """
    Simple event bus for ledger events.

    Events are delivered synchronously in the publishing thread. A failing
    subscriber is logged and does not affect the others.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event name (e.g., 'deposited', 'claimed')
            callback: Function called with the event data as keyword arguments
        """
        if event_type not in LEDGER_EVENTS:
            logger.warning(f"Subscribing to unknown event type: {event_type}")
        self.listeners.setdefault(event_type, []).append(callback)
        logger.debug(f"Subscribed to event: {event_type}")

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        if event_type in self.listeners:
            try:
                self.listeners[event_type].remove(callback)
                logger.debug(f"Unsubscribed from event: {event_type}")
            except ValueError:
                logger.warning(f"Callback not found for event: {event_type}")

    def emit(self, event_type: str, **data: Any) -> None:
        listeners = self.listeners.get(event_type, [])

        if not listeners:
            logger.debug(f"No listeners for event: {event_type}")
            return

        logger.debug(f"Emitting event: {event_type} to {len(listeners)} listener(s)")

        for callback in list(listeners):
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"Error in event callback for {event_type}: {e}", exc_info=True)

    def clear(self, event_type: str = None) -> None:
        if event_type:
            self.listeners.pop(event_type, None)
            logger.debug(f"Cleared listeners for event: {event_type}")
        else:
            self.listeners.clear()
            logger.debug("Cleared all event listeners")
