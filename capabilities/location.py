"""Script ``location`` object backed by a host position provider.

Providers return a position dict (latitude, longitude, accuracy and the
optional altitude/heading/speed fields) or None when no fix is
available. The runtime config's ``location`` section gives a fixed
position; hosts with a GPS pass their own provider.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from core.calls import AsyncCaller
from core.scheduler import Scheduler
from core.watch import PollingWatch

logger = logging.getLogger(__name__)

POSITION_FIELDS = ("latitude", "longitude", "accuracy", "altitude",
                   "altitudeAccuracy", "heading", "speed")


class LocationError(RuntimeError):
    pass


class LocationProvider:
    """Base class for position sources."""

    def current_position(self) -> Optional[Dict[str, Any]]:
        raise NotImplementedError


class StaticLocationProvider(LocationProvider):
    """A fixed position, e.g. from the runtime config."""

    def __init__(self, cfg: Dict[str, Any]):
        self._position = {field: cfg.get(field) for field in POSITION_FIELDS}
        if self._position["accuracy"] is None:
            self._position["accuracy"] = 0

    def current_position(self) -> Optional[Dict[str, Any]]:
        return dict(self._position)


class LocationAPI:
    """location.getCurrentPosition / watchPosition / isSupported."""

    def __init__(
        self,
        provider: Optional[LocationProvider],
        scheduler: Scheduler,
        caller: AsyncCaller,
        guard: Callable[[Callable], Callable],
        report: Callable[[str, str, list], None],
        interval_ms: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self._provider = provider
        self._scheduler = scheduler
        self._caller = caller
        self._guard = guard
        self._report = report
        self._interval_ms = interval_ms
        self._clock = clock
        self._watches: List[PollingWatch] = []

    def is_supported(self) -> bool:
        return self._provider is not None

    def _position(self) -> Dict[str, Any]:
        raw = self._provider.current_position()
        if raw is None:
            raise LocationError("Position unavailable")
        position = {field: raw.get(field) for field in POSITION_FIELDS}
        position["timestamp"] = int(self._clock() * 1000)
        return position

    def get_current_position(self, callback: Optional[Callable] = None,
                             errback: Optional[Callable] = None, options: Optional[Dict] = None):
        if not self.is_supported():
            self._report("error", "[Location] Geolocation not supported", [])
            self._caller.deliver(errback, LocationError("Geolocation not supported"))
            return None

        def on_position(position):
            self._report("info", "[Location] Position acquired", [position])
            if callback:
                callback(position)

        return self._caller.call(
            "[Location] getCurrentPosition", self._position, callback=on_position, errback=errback,
        )

    def watch_position(self, callback: Callable, options: Optional[Dict] = None) -> Callable[[], None]:
        """Deliver the position whenever it changes; returns stop()."""
        if not self.is_supported():
            self._report("error", "[Location] Geolocation not supported", [])
            return lambda: None

        last: List[Optional[Dict]] = [None]

        def fetch():
            try:
                position = self._position()
            except LocationError:
                return None
            fix = {k: v for k, v in position.items() if k != "timestamp"}
            if fix == last[0]:
                return None
            last[0] = fix
            return position

        def deliver(position):
            self._report("info", "[Location] Position updated", [position])
            callback(position)

        interval = (options or {}).get("interval") or self._interval_ms
        watch = PollingWatch("location", fetch, self._guard(deliver), self._scheduler,
                             interval=interval / 1000.0)
        self._watches.append(watch)
        watch.start()

        def stop():
            if watch in self._watches:
                self._watches.remove(watch)
                watch.stop()
                self._report("info", "[Location] Watch stopped", [])

        return stop

    def stop_all(self) -> int:
        count = len(self._watches)
        for watch in self._watches:
            watch.stop()
        self._watches = []
        return count

    isSupported = is_supported
    getCurrentPosition = get_current_position
    watchPosition = watch_position
