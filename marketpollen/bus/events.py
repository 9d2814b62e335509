"""
Event Bus - Decoupled Module Communication
Engine modules emit events; listeners (notifications, audit, metrics) subscribe
without the emitters importing them.
"""

from typing import Callable, Dict, List, Any
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple in-process event bus.
    A failing handler is logged and never prevents the remaining handlers from running.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, handler: Callable):
        """
        Register a handler for an event.

        Args:
            event_name: Name of the event to listen for
            handler: Callable that receives event_data dict
        """
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {getattr(handler, '__name__', handler)}")

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """
        Emit an event to all registered handlers.

        Args:
            event_name: Name of the event
            event_data: Optional dict of data to pass to handlers
        """
        if event_data is None:
            event_data = {}

        logger.debug(f"Emitting event '{event_name}' with data: {event_data}")

        for handler in self._handlers.get(event_name, []):
            try:
                handler(event_data)
            except Exception as e:
                logger.error(f"Error in handler {getattr(handler, '__name__', handler)} for event '{event_name}': {e}")

    def clear(self):
        """Clear all handlers (useful for testing)."""
        self._handlers.clear()


# Singleton instance
bus = EventBus()


# =============================================================================
# STANDARD EVENTS
# =============================================================================

# CRM engine
EVENT_STORE_CREATED = 'store_created'
EVENT_BUSINESS_CREATED = 'business_created'
EVENT_CONTACT_CREATED = 'contact_created'
EVENT_REACHOUT_LOGGED = 'reachout_logged'
EVENT_CALENDAR_EVENT_CREATED = 'calendar_event_created'

# Opportunities
EVENT_OPPORTUNITIES_ADDED = 'opportunities_added'
EVENT_OPPORTUNITY_CONVERTED = 'opportunity_converted'
EVENT_OPPORTUNITY_DISMISSED = 'opportunity_dismissed'

# Place discovery
EVENT_PLACE_DISCOVERED = 'place_discovered'

# Planning / AI
EVENT_DAY_PLAN_READY = 'day_plan_ready'
EVENT_FOLLOW_UP_SUGGESTED = 'follow_up_suggested'
EVENT_CONTACT_INTAKE_COMPLETE = 'contact_intake_complete'
