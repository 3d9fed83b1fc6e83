"""
Synchronous in-process event dispatch.

Listeners are called in registration order on the emitting thread.
A failing listener is logged and skipped; it never affects the emitter
or the remaining listeners.
"""

import threading
from typing import Any, Callable, Dict, Hashable, List, Optional

from menuhub.common.logger import setup_logger

logger = setup_logger(__name__)

Listener = Callable[[Any], None]


class EventEmitter:
    """
    Minimal pub/sub registry with unsubscribe handles.

    Usage:
        events = EventEmitter("signaling")
        unsubscribe = events.on("ready", lambda data: print("ready"))
        events.emit("ready")
        unsubscribe()
    """

    def __init__(self, name: str = "events"):
        self.name = name
        self._listeners: Dict[Hashable, List[Listener]] = {}
        self._lock = threading.Lock()

    def on(self, event: Hashable, callback: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Args:
            event: Event key
            callback: Called with the event data (one argument, may be None)

        Returns:
            Function that removes this listener. Safe to call more than once.
        """
        with self._lock:
            self._listeners.setdefault(event, []).append(callback)

        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            # Each handle removes its own registration at most once
            with self._lock:
                if removed:
                    return
                removed = True
            self.off(event, callback)

        return unsubscribe

    def off(self, event: Hashable, callback: Listener) -> None:
        """Remove one registration of callback for event, if present."""
        with self._lock:
            callbacks = self._listeners.get(event)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)

    def emit(self, event: Hashable, data: Optional[Any] = None) -> None:
        """Call every listener of event with data."""
        with self._lock:
            callbacks = list(self._listeners.get(event, ()))

        for callback in callbacks:
            try:
                callback(data)
            except Exception as e:
                logger.error("[%s] Event callback error on %s: %s", self.name, event, e)

    def listener_count(self, event: Hashable) -> int:
        with self._lock:
            return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        """Remove all listeners."""
        with self._lock:
            self._listeners.clear()
