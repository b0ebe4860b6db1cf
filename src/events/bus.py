import logging
import threading
from typing import Callable

from src.models.event import EventName

logger = logging.getLogger(__name__)

Listener = Callable[[EventName, dict], None]


class EventBus:
    """Synchronous in-process publish/subscribe keyed by ``EventName``.

    Listeners are called in registration order with ``(name, payload)``.
    The lock only guards the listener table; it is released before any
    listener runs, so a listener may emit further events.
    """

    def __init__(self):
        self._listeners: dict[EventName, list[Listener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, name: str | EventName, listener: Listener) -> None:
        event = EventName.parse(name)
        with self._lock:
            self._listeners.setdefault(event, []).append(listener)

    def unsubscribe(self, name: str | EventName, listener: Listener) -> bool:
        event = EventName.parse(name)
        with self._lock:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)
                return True
            return False

    def listener_count(self, name: str | EventName) -> int:
        event = EventName.parse(name)
        with self._lock:
            return len(self._listeners.get(event, []))

    def emit(self, name: str | EventName, payload: dict | None = None) -> int:
        """Invoke every listener for ``name``. Returns how many were invoked.

        A failing listener is logged and skipped; the emitter never sees
        its exception.
        """
        event = EventName.parse(name)
        with self._lock:
            listeners = list(self._listeners.get(event, []))

        payload = payload if payload is not None else {}
        for listener in listeners:
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Listener %r failed for event %s", listener, event.value)
        return len(listeners)
