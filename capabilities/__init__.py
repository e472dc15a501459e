"""Host capability objects exposed to scripts: http, location, usb, device."""

from capabilities.device import DeviceAPI
from capabilities.http import HttpAPI
from capabilities.location import LocationAPI, LocationProvider, StaticLocationProvider
from capabilities.usb import SerialPortHandle, UsbAPI

__all__ = [
    "DeviceAPI",
    "HttpAPI",
    "LocationAPI",
    "LocationProvider",
    "StaticLocationProvider",
    "SerialPortHandle",
    "UsbAPI",
]
