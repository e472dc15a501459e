"""Script-opened WebSocket connections (ws.connect / ws.sendTo).

Each URL gets at most one socket, opened and read on its own thread.
Open results and inbound messages are posted onto the scheduler so
script handlers only ever run on the logical thread. All connections
belong to one script execution and are closed by close_all().
"""

import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect as ws_connect

from core.scheduler import Scheduler

logger = logging.getLogger(__name__)


class _Connection:
    def __init__(self, url: str):
        self.url = url
        self.socket = None
        self.handlers: List[Callable[[Any], None]] = []
        self.closing = False
        self.thread: Optional[threading.Thread] = None
        # Callbacks waiting for the open to settle
        self.waiting: List[Callable[[bool], None]] = []


class CustomConnections:
    """URL-keyed WebSocket connections opened by a script."""

    def __init__(
        self,
        scheduler: Scheduler,
        report: Callable[[str, str, list], None],
        connect: Callable = ws_connect,
        open_timeout: float = 10.0,
    ):
        self._scheduler = scheduler
        self._report = report
        self._connect = connect
        self._open_timeout = open_timeout
        self._connections: Dict[str, _Connection] = {}
        self._lock = threading.Lock()

    def connect(self, url: str, on_message: Optional[Callable] = None,
                callback: Optional[Callable[[bool], None]] = None):
        """Open url in the background; callback(True/False) once it settles."""
        with self._lock:
            existing = self._connections.get(url)
            if existing is not None and not existing.closing:
                if on_message:
                    existing.handlers.append(on_message)
                if existing.socket is not None:
                    self._report("info", f"Already connected to {url}", [])
                    if callback:
                        self._scheduler.post(callback, True)
                elif callback:
                    existing.waiting.append(callback)
                return
            conn = _Connection(url)
            if on_message:
                conn.handlers.append(on_message)
            if callback:
                conn.waiting.append(callback)
            self._connections[url] = conn

        conn.thread = threading.Thread(
            target=self._run, args=(conn,), daemon=True, name=f"ws-{url}"
        )
        conn.thread.start()

    def disconnect(self, url: str):
        with self._lock:
            conn = self._connections.pop(url, None)
        if conn is None:
            return
        self._close(conn)
        self._report("info", f"Disconnected from {url}", [])

    def send_to(self, url: str, data: Any) -> bool:
        with self._lock:
            conn = self._connections.get(url)
        socket = conn.socket if conn else None
        if socket is None:
            self._report("error", f"Not connected to {url}", [])
            return False
        message = data if isinstance(data, str) else json.dumps(data)
        try:
            socket.send(message)
        except (ConnectionClosed, OSError) as exc:
            logger.error("Send to %s failed: %s", url, exc)
            self._report("error", f"Not connected to {url}", [])
            return False
        self._report("log", f"Sent to {url}", [data])
        return True

    def is_connected(self, url: str) -> bool:
        with self._lock:
            conn = self._connections.get(url)
        return conn is not None and conn.socket is not None and not conn.closing

    def urls(self) -> List[str]:
        with self._lock:
            return list(self._connections)

    def close_all(self) -> int:
        with self._lock:
            conns = list(self._connections.values())
            self._connections.clear()
        for conn in conns:
            self._close(conn)
        if conns:
            logger.info("Closed %d custom connection(s)", len(conns))
        return len(conns)

    @staticmethod
    def _close(conn: _Connection):
        conn.closing = True
        conn.handlers = []
        if conn.socket is not None:
            conn.socket.close()

    def _settle(self, conn: _Connection, socket) -> List[Callable[[bool], None]]:
        with self._lock:
            conn.socket = socket
            waiting, conn.waiting = conn.waiting, []
            if socket is None and self._connections.get(conn.url) is conn:
                del self._connections[conn.url]
        return waiting

    def _run(self, conn: _Connection):
        url = conn.url
        try:
            socket = self._connect(url, open_timeout=self._open_timeout)
        except Exception as exc:
            logger.error("Error connecting to %s: %s", url, exc)
            waiting = self._settle(conn, None)
            self._scheduler.post(self._report, "error", f"Error connecting to {url}", [str(exc)])
            for callback in waiting:
                self._scheduler.post(callback, False)
            return

        waiting = self._settle(conn, socket)
        if conn.closing:
            socket.close()
            return
        self._scheduler.post(self._report, "log", f"Connected to {url}", [])
        for callback in waiting:
            self._scheduler.post(callback, True)

        try:
            for raw in socket:
                try:
                    data = json.loads(raw)
                    label = "Message"
                except ValueError:
                    data = raw
                    label = "Raw message"
                self._scheduler.post(self._report, "log", f"{label} from {url}", [data])
                for handler in list(conn.handlers):
                    self._scheduler.post(handler, data)
        except ConnectionClosed:
            pass
        except OSError as exc:
            logger.error("Receive from %s failed: %s", url, exc)
        finally:
            with self._lock:
                if self._connections.get(url) is conn:
                    del self._connections[url]
            if not conn.closing:
                self._scheduler.post(self._report, "info", f"Disconnected from {url}", [])
