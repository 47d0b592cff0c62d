"""Typed session events and an explicit subscriber registry."""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Type
import logging

from readers.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionChanged:
    """Published whenever the signed-in user changes (``None`` on sign-out)."""
    user: Optional[User]

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


class EventBus:
    """Synchronous publish/subscribe keyed by event type."""

    def __init__(self):
        self._handlers: Dict[Type, List[Callable]] = {}

    def subscribe(self, event_type: Type, handler: Callable) -> Callable[[], None]:
        """
        Register a handler for an event type.

        Returns:
            Function that removes the handler again
        """
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe():
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event) -> None:
        """Call every handler for the event's type, in registration order.

        A failing handler is logged and does not stop the others.
        """
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Handler {handler!r} failed for {event!r}: {e}", exc_info=True)
