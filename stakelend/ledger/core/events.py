# MIT License
# Copyright (c) 2025 Hashborn

"""
Event system for ledger lifecycle events.

Provides a simple pub/sub mechanism. The engine emits only after an
operation has committed, so listeners never observe rolled-back changes.
"""
from typing import Dict, List, Callable, Any, Optional
import logging

logger = logging.getLogger(__name__)

# Event names emitted by LedgerEngine
STAKED = "staked"
UNSTAKED = "unstaked"
REWARDS_CLAIMED = "rewards_claimed"
LOAN_TAKEN = "loan_taken"
LOAN_REPAID = "loan_repaid"
LOAN_TERMINATED = "loan_terminated"
EXCESS_WITHDRAWN = "excess_withdrawn"
OVERDUE_LOANS_WITHDRAWN = "overdue_loans_withdrawn"
BASE_URI_SET = "base_uri_set"
FUNDED = "funded"


class EventBus:
    """
    Simple event bus for ledger events.

    Events are delivered synchronously in the emitting thread. A failing
    listener is logged and does not affect other listeners or the emitter.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Event name (e.g., 'loan_taken', 'loan_terminated')
            callback: Function to call with the event data as keyword arguments
        """
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

    def clear(self, event_type: Optional[str] = None) -> None:
        """Clear listeners for one event type, or all listeners."""
        if event_type:
            self.listeners.pop(event_type, None)
            logger.debug(f"Cleared listeners for event: {event_type}")
        else:
            self.listeners.clear()
            logger.debug("Cleared all event listeners")


