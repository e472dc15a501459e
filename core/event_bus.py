"""Per-widget event bus for script listeners.

Listeners subscribe to a (widget_id, event) pair and are called
synchronously, in registration order, when that pair is emitted. A
failing listener is logged and reported, and the remaining listeners
still run. Everything here runs on the runtime's single logical thread.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class _Listener:
    __slots__ = ("callback", "active")

    def __init__(self, callback: Callable):
        self.callback = callback
        self.active = True


class EventBus:
    """Named-event fan-out keyed by widget id."""

    def __init__(self, on_error: Optional[Callable[[str, str, Exception], None]] = None):
        self._subscribers: Dict[str, Dict[str, List[_Listener]]] = {}
        self._on_error = on_error

    def subscribe(self, widget_id: str, event: str, callback: Callable) -> Callable[[], None]:
        """Register a callback; returns a function that removes this registration."""
        listener = _Listener(callback)
        self._subscribers.setdefault(widget_id, {}).setdefault(event, []).append(listener)

        def unsubscribe():
            if not listener.active:
                return
            listener.active = False
            listeners = self._subscribers.get(widget_id, {}).get(event)
            if listeners and listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def unsubscribe(self, widget_id: str, event: Optional[str] = None,
                    callback: Optional[Callable] = None):
        """Remove every listener of a widget, of one event, or one callback."""
        events = self._subscribers.get(widget_id)
        if not events:
            return

        if event is None:
            for listeners in events.values():
                self._deactivate(listeners)
            del self._subscribers[widget_id]
            return

        listeners = events.get(event, [])
        if callback is None:
            self._deactivate(listeners)
            events.pop(event, None)
            return

        removed = [l for l in listeners if l.callback is callback]
        self._deactivate(removed)
        events[event] = [l for l in listeners if l.callback is not callback]

    def emit(self, widget_id: str, event: str, value: Any = None) -> int:
        """Call every listener for (widget_id, event). Returns how many ran."""
        listeners = self._subscribers.get(widget_id, {}).get(event)
        if not listeners:
            logger.debug("No listeners for %s.%s", widget_id, event)
            return 0

        delivered = 0
        # Snapshot so listeners may (un)subscribe while we iterate
        for listener in list(listeners):
            if not listener.active:
                continue
            delivered += 1
            try:
                listener.callback(value)
            except Exception as exc:
                logger.error("EventBus callback error [%s.%s]: %s", widget_id, event, exc)
                if self._on_error:
                    self._on_error(widget_id, event, exc)
        return delivered

    def has_listeners(self, widget_id: str, event: Optional[str] = None) -> bool:
        events = self._subscribers.get(widget_id, {})
        if event is None:
            return any(events.values())
        return bool(events.get(event))

    def events_for(self, widget_id: str) -> List[str]:
        return [e for e, listeners in self._subscribers.get(widget_id, {}).items() if listeners]

    def clear(self):
        for events in self._subscribers.values():
            for listeners in events.values():
                self._deactivate(listeners)
        self._subscribers.clear()

    @staticmethod
    def _deactivate(listeners: List[_Listener]):
        for listener in listeners:
            listener.active = False
