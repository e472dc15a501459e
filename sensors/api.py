"""Script-visible ``sensor`` object.

Every channel (sensor.accelerometer, sensor.ambientLight, ...) is backed
by a host driver bound in the runtime config, for example::

    sensors:
      accelerometer: icm20948
      magnetometer: icm20948
      ambientLight: {driver: tsl25911}

A channel with no driver reports isSupported() == False and its reads
and watches only warn on the console. Readings are dicts carrying a
millisecond ``timestamp``. Blocking reads run off-thread; callbacks and
watch deliveries always run on the scheduler.

Camera, biometric, NFC and LiDAR channels take duck-typed host drivers
(passed to the runtime as sensor_drivers) exposing ``capture(width,
height, facing_mode)``, ``authenticate(prompt)``, ``scan(timeout)`` /
``write(data)`` and ``scan()`` respectively.
"""

import base64
import logging
import time
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

from core.calls import AsyncCaller
from core.registry import DRIVER_REGISTRY
from core.scheduler import Scheduler
from core.watch import PollingWatch

logger = logging.getLogger(__name__)

READING_CHANNELS = {
    "accelerometer": "Accelerometer",
    "gyroscope": "Gyroscope",
    "magnetometer": "Magnetometer",
    "ambientLight": "Ambient light sensor",
    "proximity": "Proximity sensor",
    "barometer": "Barometer",
    "temperature": "Temperature sensor",
    "humidity": "Humidity sensor",
    "heartRate": "Heart rate sensor",
    "bloodOxygen": "Blood oxygen sensor",
}


def _noop():
    pass


def build_drivers(bindings: Optional[Dict[str, Any]], demo: bool = False) -> Dict[str, Any]:
    """Instantiate registered drivers for a channel -> driver binding map.

    A binding is a driver name or a dict with a ``driver`` key plus
    driver config. Channels naming the same driver share one instance.
    """
    instances: Dict[str, Any] = {}
    drivers: Dict[str, Any] = {}
    for channel, binding in (bindings or {}).items():
        if isinstance(binding, str):
            name, cfg = binding, {}
        else:
            cfg = dict(binding or {})
            name = cfg.pop("driver", None)

        cls = DRIVER_REGISTRY.get(name)
        if cls is None:
            logger.warning("Unknown sensor driver %r for channel %s", name, channel)
            continue
        if name not in instances:
            instances[name] = cls(cfg, demo=demo)
            logger.info("Sensor driver %s bound (%r)", name, instances[name])
        drivers[channel] = instances[name]
    return drivers


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------
class SensorChannel:
    """A reading channel: isSupported / getCurrentReading / watch."""

    def __init__(self, hub: "SensorAPI", name: str, label: str):
        self._hub = hub
        self.name = name
        self.label = label

    @property
    def driver(self):
        return self._hub.driver_for(self.name)

    def is_supported(self) -> bool:
        return self.driver is not None

    def _unsupported(self, op: str = ""):
        self._hub.report("warn", f"[Sensor] {self.label} not supported{op}", [])

    def _read(self) -> Optional[Dict[str, Any]]:
        reading = self.driver.read_channel(self.name)
        if reading is None:
            return None
        return self._hub.stamp(reading)

    def get_current_reading(self, callback: Optional[Callable] = None,
                            errback: Optional[Callable] = None):
        """Read once off-thread. callback receives the reading, or None."""
        if not self.is_supported():
            self._unsupported()
            self._hub.caller.deliver(callback, None)
            return None
        return self._hub.caller.call(
            f"[Sensor] {self.label} read", self._read, callback=callback, errback=errback,
        )

    def watch(self, callback: Callable, options: Optional[Dict[str, Any]] = None) -> Callable[[], None]:
        """Deliver a reading every options['frequency'] ms; returns stop()."""
        if not self.is_supported():
            self._unsupported()
            return _noop
        return self._hub.start_watch(self.name, self.label, self._read, callback, options)

    isSupported = is_supported
    getCurrentReading = get_current_reading


class MicrophoneChannel(SensorChannel):

    def request_permission(self) -> Dict[str, Any]:
        if not self.is_supported():
            return {"granted": False, "denied": True, "prompt": False, "error": "Microphone not supported"}
        self._hub.report("info", "[Sensor] Microphone permission granted", [])
        return {"granted": True, "denied": False, "prompt": False}

    def watch_level(self, callback: Callable, options: Optional[Dict[str, Any]] = None) -> Callable[[], None]:
        return self.watch(callback, options)

    requestPermission = request_permission
    watchLevel = watch_level


class CameraChannel(SensorChannel):

    def request_permission(self) -> Dict[str, Any]:
        if not self.is_supported():
            return {"granted": False, "denied": True, "prompt": False, "error": "Camera not supported"}
        return {"granted": True, "denied": False, "prompt": False}

    def _capture(self, width, height, facing_mode):
        image = self.driver.capture(width=width, height=height, facing_mode=facing_mode)
        if isinstance(image, (bytes, bytearray)):
            image = {
                "dataUrl": "data:image/jpeg;base64," + base64.b64encode(bytes(image)).decode("ascii"),
                "width": width,
                "height": height,
            }
        self._hub.caller.notify("info", "[Sensor] Image captured from camera", [])
        return self._hub.stamp(image)

    def capture(self, options: Optional[Dict[str, Any]] = None, callback: Optional[Callable] = None,
                errback: Optional[Callable] = None):
        if not self.is_supported():
            self._unsupported()
            return None
        options = options or {}
        return self._hub.caller.call(
            "[Sensor] Camera capture", self._capture,
            options.get("width", 640), options.get("height", 480),
            options.get("facingMode", "environment"),
            callback=callback, errback=errback,
        )

    requestPermission = request_permission


class BiometricChannel(SensorChannel):

    def _authenticate(self, prompt):
        try:
            ok = bool(self.driver.authenticate(prompt))
            method = getattr(self.driver, "method", "fingerprint")
        except Exception as exc:
            logger.warning("Biometric authentication failed: %s", exc)
            self._hub.caller.notify("error", "[Sensor] Biometric authentication failed", [str(exc)])
            return self._hub.stamp({"authenticated": False, "method": "other"})
        if ok:
            self._hub.caller.notify("info", "[Sensor] Biometric authentication successful", [])
        return self._hub.stamp({"authenticated": ok, "method": method})

    def authenticate(self, options: Optional[Dict[str, Any]] = None, callback: Optional[Callable] = None):
        if not self.is_supported():
            self._unsupported()
            return None
        prompt = (options or {}).get("promptMessage", "Authenticate")
        return self._hub.caller.call("[Sensor] Biometric", self._authenticate, prompt, callback=callback)


class NfcChannel(SensorChannel):

    def scan(self, options: Optional[Dict[str, Any]] = None, callback: Optional[Callable] = None,
             errback: Optional[Callable] = None):
        """Wait for a tag; callback receives its serial number."""
        if not self.is_supported():
            self._unsupported(" on this device")
            return None
        timeout = (options or {}).get("timeout", 10000) / 1000.0
        return self._hub.caller.call(
            "[Sensor] NFC scan", self.driver.scan, timeout, callback=callback, errback=errback,
        )

    def _write(self, data: str) -> bool:
        try:
            self.driver.write(data)
        except Exception as exc:
            logger.warning("NFC write failed: %s", exc)
            self._hub.caller.notify("error", "[Sensor] NFC write failed", [str(exc)])
            return False
        self._hub.caller.notify("info", "[Sensor] NFC write successful", [])
        return True

    def write(self, data: str, callback: Optional[Callable] = None):
        if not self.is_supported():
            self._unsupported(" on this device")
            return None
        return self._hub.caller.call("[Sensor] NFC write", self._write, data, callback=callback)


class LidarChannel(SensorChannel):

    def scan(self, callback: Optional[Callable] = None, errback: Optional[Callable] = None):
        if not self.is_supported():
            self._unsupported()
            return None
        return self._hub.caller.call(
            "[Sensor] LiDAR scan", self.driver.scan, callback=callback, errback=errback,
        )


# ---------------------------------------------------------------------------
# Façade
# ---------------------------------------------------------------------------
class SensorAPI:
    """The ``sensor`` object of the script namespace."""

    def __init__(
        self,
        drivers: Dict[str, Any],
        scheduler: Scheduler,
        caller: AsyncCaller,
        guard: Callable[[Callable], Callable],
        report: Callable[[str, str, list], None],
        frequency_ms: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        self._drivers = dict(drivers or {})
        self.scheduler = scheduler
        self.caller = caller
        self.guard = guard
        self.report = report
        self._frequency_ms = frequency_ms
        self._clock = clock
        self._watches: List[PollingWatch] = []

        for name, label in READING_CHANNELS.items():
            setattr(self, name, SensorChannel(self, name, label))
        self.microphone = MicrophoneChannel(self, "microphone", "Microphone")
        self.camera = CameraChannel(self, "camera", "Camera")
        self.biometric = BiometricChannel(self, "biometric", "Biometric authentication")
        self.nfc = NfcChannel(self, "nfc", "NFC")
        self.lidar = LidarChannel(self, "lidar", "LiDAR")

        capabilities = {
            "has" + name[0].upper() + name[1:]: self.driver_for(name) is not None
            for name in list(READING_CHANNELS) + ["microphone", "camera", "biometric", "nfc", "lidar"]
        }
        self.platform = SimpleNamespace(isApp=False, isBrowser=False, isHost=True, capabilities=capabilities)

    def driver_for(self, channel: str):
        driver = self._drivers.get(channel)
        if driver is None:
            return None
        supports = getattr(driver, "supports", None)
        if supports is not None and not supports(channel):
            return None
        return driver

    def stamp(self, reading: Dict[str, Any]) -> Dict[str, Any]:
        stamped = dict(reading)
        stamped["timestamp"] = int(self._clock() * 1000)
        return stamped

    def start_watch(self, channel: str, label: str, fetch: Callable, callback: Callable,
                    options: Optional[Dict[str, Any]]) -> Callable[[], None]:
        frequency = (options or {}).get("frequency") or self._frequency_ms
        watch = PollingWatch(channel, fetch, self.guard(callback), self.scheduler, interval=frequency / 1000.0)
        self._watches.append(watch)
        watch.start()
        self.report("info", f"[Sensor] {label} watching started", [])

        def stop():
            if watch in self._watches:
                self._watches.remove(watch)
                watch.stop()
                self.report("info", f"[Sensor] {label} watching stopped", [])

        return stop

    @property
    def active_watches(self) -> int:
        return len(self._watches)

    def stop_all(self) -> int:
        """Stop every watch started through this object (cleanup)."""
        count = len(self._watches)
        for watch in self._watches:
            watch.stop()
        self._watches = []
        return count
