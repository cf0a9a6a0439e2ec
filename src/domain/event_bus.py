"""
Event Bus.

In-process publication and subscription of domain events. Handlers run
synchronously in registration order; a handler that raises is logged and
skipped so notification problems never leak into settlement logic.
"""

import logging
from typing import Callable, Dict, List, Type

from .events import DomainEvent


logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple in-process event bus for publishing domain events.

    Events are delivered to handlers registered for their exact type and to
    global handlers.
    """

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[Callable[[DomainEvent], None]]] = {}
        self._global_handlers: List[Callable[[DomainEvent], None]] = []

    def subscribe(
        self,
        event_type: Type[DomainEvent],
        handler: Callable[[DomainEvent], None]
    ) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Type of event to subscribe to
            handler: Callback function to invoke
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to {event_type.__name__}")

    def subscribe_all(self, handler: Callable[[DomainEvent], None]) -> None:
        """Subscribe to all events."""
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: Type[DomainEvent], handler: Callable) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns:
            True if handler was removed
        """
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to every matching handler."""
        handlers = self._handlers.get(type(event), []) + self._global_handlers

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Error in event handler for {event.event_type.value}: {e}",
                    exc_info=True,
                )

    def clear(self) -> None:
        """Clear all subscriptions."""
        self._handlers.clear()
        self._global_handlers.clear()


class LoggingEventHandler:
    """Global handler that writes every event to the log."""

    def __init__(self, logger_name: str = "domain.events"):
        self._logger = logging.getLogger(logger_name)

    def __call__(self, event: DomainEvent) -> None:
        self._logger.info(
            f"Domain event: {event.event_type.value}",
            extra={"event_id": str(event.event_id), "event_type": event.event_type.value},
        )
