"""Background polling watches.

A PollingWatch reads a value source (a sensor driver, a location
provider) on its own thread at a fixed interval and posts each reading
to the Scheduler. The script callback therefore always runs on the
runtime's logical thread, never on the polling thread.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

from core.scheduler import Scheduler

logger = logging.getLogger(__name__)


class PollingWatch:
    """Poll fetch() every interval seconds and deliver results via the scheduler.

    fetch returns the reading, or None to skip this cycle.
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Optional[Any]],
        deliver: Callable[[Any], None],
        scheduler: Scheduler,
        interval: float = 0.1,
    ):
        self.name = name
        self.interval = max(interval, 0.01)
        self._fetch = fetch
        self._deliver = deliver
        self._scheduler = scheduler
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def start(self):
        """Start the background polling thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, daemon=True, name=f"watch-{self.name}"
        )
        self._thread.start()
        logger.info("Watch %s started (%.2fs interval)", self.name, self.interval)

    def stop(self):
        """Signal the background thread to stop. Pending deliveries are dropped."""
        if self._stop.is_set():
            return
        self._stop.set()
        logger.info("Watch %s stopped", self.name)

    def tick(self) -> bool:
        """Run one fetch cycle. Returns True if a reading was posted."""
        if self._stop.is_set():
            return False
        try:
            reading = self._fetch()
        except Exception as exc:
            logger.error("Watch %s fetch error: %s", self.name, exc)
            return False
        if reading is None:
            return False
        self._scheduler.post(self._deliver_if_running, reading)
        return True

    def _deliver_if_running(self, reading: Any):
        if not self._stop.is_set():
            self._deliver(reading)

    def _run(self):
        """Poll loop: fetch and post, sleeping in small chunks."""
        while not self._stop.is_set():
            self.tick()

            # Sleep in 0.05s chunks so stop() is responsive
            chunks = int(self.interval / 0.05)
            for _ in range(max(chunks, 1)):
                if self._stop.is_set():
                    break
                time.sleep(min(self.interval, 0.05))
