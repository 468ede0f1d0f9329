"""In-process, synchronous event bus.

Handlers run in subscription order, each to completion, before ``publish``
returns. A handler that raises is logged and dead-lettered; the remaining
handlers still run and the publisher never sees the error.

History and dead letters are bounded: only the newest ``history_size``
entries are kept.
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple, Type, Union

from workhub.domain.events import BaseEvent, UserEvent

logger = logging.getLogger(__name__)

Event = Union[BaseEvent, UserEvent]
Handler = Callable[[Event], None]


class EventBus:
    def __init__(self, history_size: int = 1000) -> None:
        self._subscriptions: List[Tuple[Optional[Tuple[type, ...]], Handler]] = []
        self._history: Deque[Event] = deque(maxlen=history_size)
        self._dead_letters: Deque[Tuple[Event, Handler, Exception]] = deque(maxlen=history_size)
        self._lock = threading.Lock()
        self.handler_errors = 0

    def subscribe(self, handler: Handler, *event_types: type) -> None:
        """Subscribe ``handler`` to ``event_types``, or to every event if none given."""
        self._subscriptions.append((event_types or None, handler))

    def publish(self, event: Event) -> None:
        with self._lock:
            self._history.append(event)
        for event_types, handler in list(self._subscriptions):
            if event_types is not None and not isinstance(event, event_types):
                continue
            try:
                handler(event)
            except Exception as e:
                logger.exception(
                    "Handler %s failed on %s event=%s",
                    getattr(handler, "__name__", type(handler).__name__),
                    event.event_type,
                    event.event_id,
                )
                with self._lock:
                    self.handler_errors += 1
                    self._dead_letters.append((event, handler, e))

    def get_history(self, event_type: Optional[Type[Event]] = None) -> List[Event]:
        """Recently published events, optionally filtered by class."""
        with self._lock:
            if event_type is None:
                return list(self._history)
            return [event for event in self._history if isinstance(event, event_type)]

    def get_dead_letters(self) -> List[Tuple[Event, Handler, Exception]]:
        with self._lock:
            return list(self._dead_letters)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
            self._dead_letters.clear()
