"""Dashboard Automation - Configuration

Runtime defaults for the script runtime, the action resolver and the
web host. Everything a session needs is threaded through a RuntimeConfig
object; nothing here is mutated at runtime.

Config example (runtime section of dashboard.yaml):
    runtime:
      ready_delay_ms: 100
      device_ws_url: "wss://realtime.example.com"
      connection_id: "dashboard-42"
      http_timeout: 10
      screen:
        width: 800
        height: 480
        touch: true
      location:
        latitude: 34.4275
        longitude: -119.859
      sensors:
        accelerometer: icm20948
        gyroscope: icm20948
        magnetometer: icm20948
        ambientLight: tsl25911
"""

import copy
import logging
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Runtime defaults
# ---------------------------------------------------------------------------
RUNTIME_DEFAULTS = {
    "ready_delay_ms": 100,          # delay between load and ready lifecycle events
    "storage_prefix": "dashboard_script_",
    "device_ws_url": "",            # empty = log sends instead of delivering them
    "connection_id": "device-service",
    "default_device_id": "default-device",
    "reconnect_attempts": 5,
    "reconnect_delay": 1.0,         # seconds, multiplied by the attempt number
    "http_timeout": 10,             # seconds
    "sensor_frequency_ms": 100,     # default watch frequency for motion sensors
    "location_interval_ms": 1000,
    "max_workers": 4,               # off-thread calls (http, db, sensor reads)
    "console_history": 200,
    "data_path": "dashboard_data.db",  # SQLite file behind db.* and device.*
    "demo": False,                  # drivers return simulated readings
    "screen": {
        "width": 1280,
        "height": 800,
        "touch": False,
    },
    "location": None,               # {"latitude": .., "longitude": .., "accuracy": ..}
    "sensors": {},                  # sensor channel -> driver name
}

# ---------------------------------------------------------------------------
# Device class breakpoints (screen width in px)
# ---------------------------------------------------------------------------
MOBILE_MAX_WIDTH = 768
TABLET_MAX_WIDTH = 1024


class RuntimeConfig:
    """Explicit per-session configuration.

    Built from RUNTIME_DEFAULTS overlaid with a dict (usually the
    ``runtime`` section of dashboard.yaml). Attribute access for known
    keys, ``get()`` for anything else.
    """

    def __init__(self, overrides: Optional[Dict[str, Any]] = None):
        self._values = copy.deepcopy(RUNTIME_DEFAULTS)
        for key, value in (overrides or {}).items():
            if key not in RUNTIME_DEFAULTS:
                logger.warning("Unknown runtime config key: %s", key)
            if isinstance(value, dict) and isinstance(self._values.get(key), dict):
                self._values[key] = {**self._values[key], **value}
            else:
                self._values[key] = value

    @classmethod
    def from_yaml(cls, text: str) -> "RuntimeConfig":
        data = yaml.safe_load(text) or {}
        return cls(data.get("runtime", data))

    @classmethod
    def from_file(cls, path: str) -> "RuntimeConfig":
        with open(path) as f:
            return cls.from_yaml(f.read())

    def __getattr__(self, name: str) -> Any:
        values = self.__dict__.get("_values", {})
        if name in values:
            return values[name]
        raise AttributeError(name)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._values)

    def device_info(self) -> Dict[str, Any]:
        """Describe the host screen the way scripts see it in context.device."""
        screen = self._values.get("screen") or {}
        width = int(screen.get("width", 0))
        height = int(screen.get("height", 0))

        if width < MOBILE_MAX_WIDTH:
            kind = "mobile"
        elif width < TABLET_MAX_WIDTH:
            kind = "tablet"
        else:
            kind = "desktop"

        return {
            "type": kind,
            "isMobile": kind == "mobile",
            "isTablet": kind == "tablet",
            "isDesktop": kind == "desktop",
            "screenWidth": width,
            "screenHeight": height,
            "orientation": "landscape" if width > height else "portrait",
            "touchEnabled": bool(screen.get("touch", False)),
        }

    def __repr__(self) -> str:
        return f"<RuntimeConfig {self._values!r}>"
