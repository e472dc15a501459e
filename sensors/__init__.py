"""Sensor drivers and the script ``sensor`` object.

Each driver class inherits from SensorDriver and registers itself by
name with @register_driver; importing this package registers them all:

    icm20948     accelerometer, gyroscope, magnetometer
    tsl25911     ambientLight
    bme280       temperature, humidity, barometer
    ads1115-mic  microphone

The runtime config binds channels to driver names (see build_drivers).
"""

from sensors.base import SensorDriver
from sensors.icm20948 import ICM20948Driver
from sensors.tsl25911 import TSL25911Driver
from sensors.bme280 import BME280Driver
from sensors.microphone import MicrophoneDriver
from sensors.api import SensorAPI, build_drivers

__all__ = [
    "SensorDriver",
    "ICM20948Driver",
    "TSL25911Driver",
    "BME280Driver",
    "MicrophoneDriver",
    "SensorAPI",
    "build_drivers",
]
