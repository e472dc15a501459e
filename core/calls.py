"""Off-thread calls with completion on the logical thread.

Blocking capability calls (HTTP requests, database queries, serial reads)
run on a small thread pool so they never stall the scheduler. Their
outcome is posted back to the scheduler and handed to the script's
callback or errback there.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from core.scheduler import Scheduler

logger = logging.getLogger(__name__)


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


def default_executor(max_workers: int = 4) -> Executor:
    return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dash-call")


class AsyncCaller:
    """Submit blocking work and route its result through the scheduler.

    guard wraps the callback/errback so late results are dropped after
    the owning script execution has been torn down.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        executor: Executor,
        guard: Callable[[Callable], Callable],
        report: Callable[[str, str, list], None],
    ):
        self._scheduler = scheduler
        self._executor = executor
        self._guard = guard
        self._report = report

    def call(
        self,
        label: str,
        fn: Callable[..., Any],
        *args,
        callback: Optional[Callable[[Any], None]] = None,
        errback: Optional[Callable[[Exception], None]] = None,
        **kwargs,
    ) -> Future:
        """Run fn(*args, **kwargs) off-thread; returns the Future."""
        on_result = self._guard(callback) if callback else None
        on_error = self._guard(errback) if errback else None

        def done(future: Future):
            exc = future.exception()
            if exc is not None:
                logger.warning("%s failed: %s", label, exc)
                self._scheduler.post(self._report, "error", f"{label} failed: {exc}", [str(exc)])
                if on_error:
                    self._scheduler.post(on_error, exc)
                return
            if on_result:
                self._scheduler.post(on_result, future.result())

        future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(done)
        return future

    def deliver(self, callback: Optional[Callable], value: Any = None):
        """Post a guarded callback(value) without running anything off-thread."""
        if callback:
            self._scheduler.post(self._guard(callback), value)

    def notify(self, level: str, message: str, args: Optional[list] = None):
        """Report to the console from any thread (posted to the scheduler)."""
        self._scheduler.post(self._report, level, message, list(args or []))

    def shutdown(self):
        self._executor.shutdown(wait=False)
