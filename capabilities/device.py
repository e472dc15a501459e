"""Script ``device`` object: the user's devices, their data and commands."""

import logging
from typing import Any, Callable, Dict, List, Optional

from core.calls import AsyncCaller

logger = logging.getLogger(__name__)

DEVICES_TABLE = "user_devices"
SENSOR_DATA_TABLE = "sensor_data"


class DeviceAPI:
    """device.getDevices / getDeviceData / sendCommand.

    Lookups go through the data client off-thread and land in the
    callback on the logical thread. Commands go straight out on the
    transport as {targetId, payload}.
    """

    def __init__(self, data_client, user_id: Optional[str], transport, caller: AsyncCaller,
                 report: Callable[[str, str, list], None]):
        self._client = data_client
        self._user_id = user_id
        self._transport = transport
        self._caller = caller
        self._report = report

    def _fetch_devices(self) -> List[Dict[str, Any]]:
        try:
            rows = self._client.query(DEVICES_TABLE, {"user_id": self._user_id}, {})
        except Exception as exc:
            logger.error("Get devices failed: %s", exc)
            self._caller.notify("error", "Failed to get devices", [str(exc)])
            return []
        devices = [{"id": row.get("id"), "name": row.get("device_name"), "online": True} for row in rows]
        self._caller.notify("info", f"[DeviceAPI] Found {len(devices)} device(s)", [devices])
        return devices

    def get_devices(self, callback: Optional[Callable] = None):
        """callback receives a list of {id, name, online}; [] when unavailable."""
        if self._client is None or not self._user_id:
            if self._client is None:
                self._report("warn", "[DeviceAPI] Database not available", [])
            else:
                self._report("warn", "[DeviceAPI] User not authenticated - returning empty device list", [])
            self._caller.deliver(callback, [])
            return None
        return self._caller.call("[DeviceAPI] getDevices", self._fetch_devices, callback=callback)

    def get_device_data(self, device_id: str, limit: int = 100, callback: Optional[Callable] = None,
                        errback: Optional[Callable] = None):
        """Latest sensor_data rows for device_id, newest first."""
        if self._client is None:
            self._report("error", "Database not available", [device_id])
            self._caller.deliver(errback, RuntimeError("Database not available"))
            return None
        return self._caller.call(
            f"[DeviceAPI] getDeviceData {device_id}",
            self._client.query,
            SENSOR_DATA_TABLE,
            {"device_id": device_id},
            {"order": "timestamp", "ascending": False, "limit": limit},
            callback=callback,
            errback=errback,
        )

    def send_command(self, device_id: str, command: Any) -> bool:
        try:
            sent = self._transport.send(device_id, command)
        except Exception as exc:
            logger.error("Command to %s failed: %s", device_id, exc)
            self._report("error", f"[DeviceAPI] Command to {device_id} failed", [str(exc)])
            return False
        self._report("info", f"[DeviceAPI] Command sent to {device_id}", [command])
        return bool(sent)

    getDevices = get_devices
    getDeviceData = get_device_data
    sendCommand = send_command
