"""Transport adapter contract.

The runtime and the action resolver only ever call send(target_id,
payload). Inbound messages are fanned out to on_message() handlers; the
transport may call them from any thread, so the runtime re-posts them
onto its scheduler before any script code sees them.
"""

import json
import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class TransportAdapter:
    """Base class: handler bookkeeping plus the send() contract."""

    def __init__(self):
        self._handlers: List[Callable[[Any], None]] = []
        self._lock = threading.Lock()

    def send(self, target_id: str, payload: Any) -> bool:
        """Deliver {targetId, payload}. Returns False if it could not be sent."""
        raise NotImplementedError

    def on_message(self, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Register an inbound message handler; returns an unsubscribe function."""
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe():
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def dispatch_message(self, message: Any) -> None:
        """Hand an inbound message to every handler."""
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(message)
            except Exception as exc:
                logger.error("Transport message handler error: %s", exc)

    def close(self) -> None:
        with self._lock:
            self._handlers.clear()

    @staticmethod
    def envelope(target_id: str, payload: Any) -> Dict[str, Any]:
        return {"targetId": target_id, "payload": payload}


class LoggingTransport(TransportAdapter):
    """Transport used when no device URL is configured: sends are logged."""

    def __init__(self, history: int = 100):
        super().__init__()
        self._history = history
        self.sent: List[Dict[str, Any]] = []

    def send(self, target_id: str, payload: Any) -> bool:
        message = self.envelope(target_id, payload)
        logger.info("send -> %s %s", target_id, json.dumps(payload, default=str))
        self.sent.append(message)
        if len(self.sent) > self._history:
            del self.sent[: len(self.sent) - self._history]
        return True
