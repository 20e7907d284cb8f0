"""
Event bus for ledger domain events.

Synchronous in-process pub/sub. Handlers execute immediately in the same
thread as the publisher. Handler errors are logged but never propagate:
the primary operation (DB write + audit) has already committed.
"""

import logging
from typing import Callable, Dict, List

from core.events import LedgerEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus for ledger domain events.

    Subscribe by event class name (string), publish by event instance.
    A subscription to a base class name (e.g. 'InvoiceEvent') also receives
    its subclasses. Handlers are called synchronously in subscription order,
    most specific class first.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable):
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Name of event class to subscribe to (e.g. 'InvoiceCreated')
            callback: Function to call when event is published
        """
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(callback)

    def publish(self, event: LedgerEvent):
        """
        Publish an event to all subscribers of its type and base types.

        Handler errors are logged but do not propagate; the primary
        operation has already committed.

        Args:
            event: LedgerEvent instance to publish
        """
        event_type = event.__class__.__name__

        for cls in event.__class__.__mro__:
            for callback in self._subscribers.get(cls.__name__, ()):
                try:
                    callback(event)
                except Exception:
                    logger.exception(
                        "Handler %s failed for %s (event_id=%s)",
                        getattr(callback, "__name__", repr(callback)),
                        event_type,
                        event.event_id,
                    )
