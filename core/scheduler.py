"""Cooperative scheduler: the runtime's single logical thread.

Background threads (sensor watches, HTTP calls, socket readers) never
touch widgets or script callbacks directly. They post() work onto a
thread-safe FIFO queue; the thread that owns the session drains it with
run_pending(), then fires due timers. Posted work runs in arrival order
and never concurrently with other work.
"""

import heapq
import itertools
import logging
import threading
import time
from queue import Queue, Empty
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class Timer:
    """Handle for a scheduled callback. cancel() is idempotent."""

    __slots__ = ("deadline", "interval", "callback", "args", "cancelled", "fired", "_seq")

    def __init__(self, deadline: float, interval: Optional[float], callback: Callable, args, seq: int):
        self.deadline = deadline
        self.interval = interval
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False
        self._seq = seq

    def cancel(self):
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def __lt__(self, other: "Timer") -> bool:
        return (self.deadline, self._seq) < (other.deadline, other._seq)

    def __repr__(self) -> str:
        kind = "every" if self.interval is not None else "at"
        return f"<Timer {kind} {self.deadline:.3f} cancelled={self.cancelled}>"


class Scheduler:
    """FIFO callback queue plus a timer heap, drained by one thread."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._queue: Queue = Queue()
        self._timers: List[Timer] = []
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._wakeup = threading.Event()

    def now(self) -> float:
        return self._clock()

    def post(self, callback: Callable, *args) -> None:
        """Queue work for the logical thread. Safe from any thread."""
        self._queue.put((callback, args))
        self._wakeup.set()

    def call_later(self, delay: float, callback: Callable, *args) -> Timer:
        """Run callback once after delay seconds."""
        return self._push(max(delay, 0.0), None, callback, args)

    def call_every(self, interval: float, callback: Callable, *args) -> Timer:
        """Run callback every interval seconds until cancelled."""
        interval = max(interval, 0.001)
        return self._push(interval, interval, callback, args)

    def _push(self, delay, interval, callback, args) -> Timer:
        timer = Timer(self._clock() + delay, interval, callback, args, next(self._seq))
        with self._lock:
            heapq.heappush(self._timers, timer)
        self._wakeup.set()
        return timer

    def pending(self) -> int:
        """Queued callbacks plus live timers."""
        with self._lock:
            live = sum(1 for t in self._timers if not t.cancelled)
        return self._queue.qsize() + live

    def next_deadline(self) -> Optional[float]:
        with self._lock:
            while self._timers and self._timers[0].cancelled:
                heapq.heappop(self._timers)
            return self._timers[0].deadline if self._timers else None

    def run_pending(self) -> int:
        """Drain queued callbacks, then fire timers that are due.

        Only work queued before this call runs in this pass, so a callback
        that keeps posting cannot starve the timers. Returns how many
        callbacks ran.
        """
        ran = 0
        for _ in range(self._queue.qsize()):
            try:
                callback, args = self._queue.get_nowait()
            except Empty:
                break
            self._invoke(callback, args)
            ran += 1

        now = self._clock()
        due = []
        with self._lock:
            while self._timers and self._timers[0].deadline <= now:
                timer = heapq.heappop(self._timers)
                if not timer.cancelled:
                    due.append(timer)

        for timer in due:
            if timer.cancelled:
                continue
            if timer.interval is None:
                timer.fired = True
            self._invoke(timer.callback, timer.args)
            ran += 1
            if timer.interval is not None and not timer.cancelled:
                timer.deadline = max(timer.deadline + timer.interval, now)
                with self._lock:
                    heapq.heappush(self._timers, timer)
        return ran

    def run_until_idle(self, max_passes: int = 100) -> int:
        """Run passes until nothing is immediately runnable."""
        total = 0
        for _ in range(max_passes):
            ran = self.run_pending()
            total += ran
            if not ran:
                break
        return total

    def run_forever(self, stop: threading.Event, max_wait: float = 0.05):
        """Loop on the calling thread until stop is set."""
        logger.info("Scheduler loop started on %s", threading.current_thread().name)
        while not stop.is_set():
            self.run_pending()
            deadline = self.next_deadline()
            wait = max_wait
            if deadline is not None:
                wait = min(max_wait, max(deadline - self._clock(), 0.0))
            if self._queue.empty():
                self._wakeup.wait(wait)
            self._wakeup.clear()
        logger.info("Scheduler loop stopped")

    @staticmethod
    def _invoke(callback: Callable, args):
        try:
            callback(*args)
        except Exception as exc:
            logger.error("Scheduler callback error [%s]: %s",
                         getattr(callback, "__name__", callback), exc)
