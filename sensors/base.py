"""Base class for host sensor drivers.

A driver talks to one physical sensor and serves one or more script
sensor channels (an IMU serves accelerometer, gyroscope and
magnetometer). The sensor façade only needs two things from it: whether
a channel is available, and the latest reading for that channel in the
shape scripts expect.

Channels served by the same driver share one bus transaction: a raw
sample is reused for SAMPLE_TTL seconds, so three IMU watches polling
at 100 ms do not triple the I2C traffic.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple
import threading
import time
import logging

logger = logging.getLogger(__name__)


class SensorDriver(ABC):
    """One physical sensor behind one or more channels.

    Subclasses implement _init_hardware, _read_hardware, _simulate and
    channel_reading, and list the channels they serve in CHANNELS.
    Without hardware a driver is absent, unless demo is set, in which
    case it serves simulated samples.
    """

    CHANNELS: Tuple[str, ...] = ()

    MAX_RETRIES: int = 2
    RETRY_DELAY: float = 0.1
    SAMPLE_TTL: float = 0.05

    # Log the 1st failure in a run, then every Nth
    FAILURE_LOG_EVERY = 50

    def __init__(self, cfg: Optional[Dict[str, Any]] = None, demo: bool = False):
        self._cfg = cfg or {}
        self.demo = demo
        self._hw_available = False
        self._lock = threading.Lock()
        self._sample: Optional[Dict[str, Any]] = None
        self._sampled_at = 0.0
        self._failure_run = 0
        self._attempts = 0
        self._failures = 0

        try:
            self._init_hardware()
        except Exception as exc:
            logger.warning("%s: hardware init failed: %s", self.__class__.__name__, exc)
            self._hw_available = False

    @abstractmethod
    def _init_hardware(self) -> None:
        """Probe the sensor; set self._hw_available = True when it answers."""

    @abstractmethod
    def _read_hardware(self) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def _simulate(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    def channel_reading(self, channel: str, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Shape a raw sample into one channel's reading (no timestamp)."""

    @property
    def simulated(self) -> bool:
        return not self._hw_available

    @property
    def available(self) -> bool:
        return self._hw_available or self.demo

    @property
    def reliability(self) -> float:
        """Share of hardware reads that succeeded, in percent."""
        if not self._attempts:
            return 100.0
        return 100.0 * (self._attempts - self._failures) / self._attempts

    def supports(self, channel: str) -> bool:
        return channel in self.CHANNELS and self.available

    def read(self, demo: Optional[bool] = None) -> Optional[Dict[str, Any]]:
        """Latest raw sample, or None when the sensor is absent or failing."""
        if demo is None:
            demo = self.demo
        if not self._hw_available:
            return self._simulate() if demo else None

        with self._lock:
            now = time.monotonic()
            if self._sample is not None and now - self._sampled_at < self.SAMPLE_TTL:
                return self._sample
            sample = self._read_with_retry()
            self._sample = sample
            self._sampled_at = now
            return sample

    def _read_with_retry(self) -> Optional[Dict[str, Any]]:
        self._attempts += 1
        error: Any = "returned None"
        for attempt in range(self.MAX_RETRIES):
            if attempt:
                time.sleep(self.RETRY_DELAY)
            try:
                sample = self._read_hardware()
            except Exception as exc:
                error = exc
                continue
            if sample is not None:
                self._failure_run = 0
                return sample

        self._failures += 1
        self._failure_run += 1
        if self._failure_run == 1 or self._failure_run % self.FAILURE_LOG_EVERY == 0:
            logger.warning("%s: read failed (%d in a row): %s",
                           self.__class__.__name__, self._failure_run, error)
        return None

    def read_channel(self, channel: str) -> Optional[Dict[str, Any]]:
        raw = self.read()
        if raw is None:
            return None
        return self.channel_reading(channel, raw)

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        status = "live" if self._hw_available else ("demo" if self.demo else "absent")
        return f"<{self.__class__.__name__} {status} channels={','.join(self.CHANNELS)}>"
