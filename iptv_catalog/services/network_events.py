"""
Network state events

Platform connectivity changes are published here and delivered to subscribers
as explicit events instead of ad hoc callbacks.
"""
import logging
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class NetworkEvent(str, Enum):
    ONLINE = "network-online"
    OFFLINE = "network-offline"


NetworkListener = Callable[[NetworkEvent], None]


class NetworkEventSource:
    """Fan-out of network events to subscribers"""

    def __init__(self) -> None:
        self._listeners: list[NetworkListener] = []
        self.last_event: NetworkEvent | None = None

    def subscribe(self, listener: NetworkListener) -> Callable[[], None]:
        """
        Register a listener

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: NetworkEvent) -> None:
        """Deliver an event to every listener; a failing listener does not stop the others"""
        self.last_event = event
        logger.info("Network event: %s", event.value)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.error("Network listener failed on %s: %s", event.value, exc, exc_info=True)
