"""WebSocket link to the device relay service.

Connects to ``<url>/?id=<connection_id>`` with the websockets sync
client on a background thread, decodes inbound JSON messages and hands
them to on_message handlers. Sends are ``{"targetId", "payload"}`` JSON
envelopes. A dropped connection is retried a bounded number of times
with a linearly growing delay.
"""

import json
import logging
import threading
from typing import Any, Callable, Optional

from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect as ws_connect

from transport.base import TransportAdapter

logger = logging.getLogger(__name__)


class DeviceLink(TransportAdapter):
    """Device relay transport with bounded reconnect."""

    def __init__(
        self,
        url: str,
        connection_id: str = "device-service",
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        open_timeout: float = 10.0,
        connect: Callable = ws_connect,
    ):
        super().__init__()
        self.url = url.rstrip("/")
        self.connection_id = connection_id
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self._open_timeout = open_timeout
        self._connect = connect
        self._socket = None
        self._socket_lock = threading.Lock()
        self._stop = threading.Event()
        self._connected = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._attempts = 0

    @property
    def endpoint(self) -> str:
        return f"{self.url}/?id={self.connection_id}"

    def start(self):
        """Start the background connection thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="device-link")
        self._thread.start()
        logger.info("DeviceLink connecting to %s", self.endpoint)

    def wait_connected(self, timeout: float) -> bool:
        return self._connected.wait(timeout)

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def send(self, target_id: str, payload: Any) -> bool:
        with self._socket_lock:
            socket = self._socket
        if socket is None or not self._connected.is_set():
            logger.error("DeviceLink not connected, cannot send to %s", target_id)
            return False
        try:
            socket.send(json.dumps(self.envelope(target_id, payload)))
        except (ConnectionClosed, OSError) as exc:
            logger.error("DeviceLink send to %s failed: %s", target_id, exc)
            return False
        logger.debug("DeviceLink sent to %s", target_id)
        return True

    def close(self):
        self._stop.set()
        self._connected.clear()
        with self._socket_lock:
            socket, self._socket = self._socket, None
        if socket is not None:
            socket.close()
        super().close()

    def _run(self):
        while not self._stop.is_set():
            try:
                socket = self._connect(self.endpoint, open_timeout=self._open_timeout)
            except Exception as exc:
                logger.error("DeviceLink connect error: %s", exc)
            else:
                with self._socket_lock:
                    self._socket = socket
                self._attempts = 0
                self._connected.set()
                logger.info("DeviceLink connected as %s", self.connection_id)
                self._receive(socket)
                self._connected.clear()
                with self._socket_lock:
                    self._socket = None
                logger.info("DeviceLink disconnected")

            if self._stop.is_set():
                break
            if self._attempts >= self.reconnect_attempts:
                logger.error("DeviceLink: max reconnection attempts reached")
                break
            self._attempts += 1
            logger.info("DeviceLink reconnecting (%d/%d)", self._attempts, self.reconnect_attempts)
            self._stop.wait(self.reconnect_delay * self._attempts)

    def _receive(self, socket):
        try:
            for raw in socket:
                try:
                    message = json.loads(raw)
                except ValueError as exc:
                    logger.error("DeviceLink: bad message: %s", exc)
                    continue
                self.dispatch_message(message)
        except ConnectionClosed:
            pass
        except OSError as exc:
            logger.error("DeviceLink receive error: %s", exc)
