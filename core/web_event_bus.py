"""Web-facing event feed for the dashboard host.

Collects what a DashboardSession reports to its host (widget updates,
geometry changes, console lines) and fans it out to SSE clients. The
session calls in from the scheduler thread; Flask request threads read
from per-client queues.
"""

import logging
import threading
import time
from collections import deque
from queue import Queue, Empty, Full
from typing import Any, Dict, List, Optional

from core.bridge import format_console_arg

logger = logging.getLogger(__name__)


class WebEventBus:
    """Thread-safe topic fan-out with a bounded console history."""

    def __init__(self, console_history: int = 200):
        self._latest: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._sse_clients: List[Queue] = []
        self._console = deque(maxlen=console_history)

    def publish(self, topic: str, payload: Any):
        """Push data from any thread. Thread-safe."""
        with self._lock:
            self._latest[topic] = payload
            clients = list(self._sse_clients)

        # Notify SSE clients (non-blocking); drop the ones that stopped reading
        dead = []
        for q in clients:
            try:
                q.put_nowait((topic, payload))
            except Full:
                dead.append(q)
        if dead:
            with self._lock:
                for q in dead:
                    if q in self._sse_clients:
                        self._sse_clients.remove(q)
            logger.info("Dropped %d stalled SSE client(s)", len(dead))

    # -- session callbacks ------------------------------------------------

    def widget_updated(self, widget_id: str, partial: Dict[str, Any]):
        self.publish("widget", {"widgetId": widget_id, "update": partial})

    def transform_updated(self, widget_id: str, transform: Dict[str, Any]):
        self.publish("transform", {"widgetId": widget_id, "transform": transform})

    def console(self, level: str, message: str, args: Optional[list] = None):
        entry = {
            "time": time.time(),
            "level": level,
            "message": message,
            "args": [format_console_arg(a) for a in (args or [])],
        }
        with self._lock:
            self._console.append(entry)
        self.publish("console", entry)

    # -- readers ----------------------------------------------------------

    def console_history(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._console)

    def get_latest(self, topic: Optional[str] = None) -> Any:
        """Get latest payload for a topic, or all topics."""
        with self._lock:
            if topic:
                return self._latest.get(topic)
            return dict(self._latest)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._sse_clients)

    def sse_stream(self, keepalive: float = 30.0):
        """Generator for SSE clients. Yields (topic, payload) tuples.

        Usage in Flask:
            def stream():
                for topic, payload in bus.sse_stream():
                    yield f"event: {topic}\\ndata: {json.dumps(payload)}\\n\\n"
        """
        q = Queue(maxsize=100)
        with self._lock:
            self._sse_clients.append(q)
        try:
            while True:
                try:
                    topic, payload = q.get(timeout=keepalive)
                    yield topic, payload
                except Empty:
                    # Send keepalive
                    yield "keepalive", None
        finally:
            with self._lock:
                if q in self._sse_clients:
                    self._sse_clients.remove(q)
