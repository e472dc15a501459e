"""ICM20948 9-DOF IMU driver (I2C).

Serves the accelerometer (m/s²), gyroscope (orientation angles in
degrees) and magnetometer (µT plus compass heading) channels.

I2C Address: 0x68 (can be 0x69 with jumper)
"""

import random
import logging
import math
from typing import Any, Dict, Optional

from core.registry import register_driver
from sensors.base import SensorDriver

logger = logging.getLogger(__name__)

try:
    import board
    import busio
    import adafruit_icm20x
    _lib_available = True
except ImportError:
    _lib_available = False


def heading_degrees(mag_x: float, mag_y: float) -> float:
    """Compass heading 0-360 from the horizontal magnetic components."""
    return round((math.degrees(math.atan2(mag_y, mag_x)) + 360.0) % 360.0, 1)


@register_driver("icm20948")
class ICM20948Driver(SensorDriver):
    CHANNELS = ("accelerometer", "gyroscope", "magnetometer")

    def _init_hardware(self) -> None:
        self._sensor = None
        if not _lib_available:
            logger.info('ICM20948: adafruit_icm20x library not installed')
            return

        address = self._cfg.get("address", 0x68)
        try:
            i2c = busio.I2C(board.SCL, board.SDA)
            self._sensor = adafruit_icm20x.ICM20948(i2c, address=address)
            self._hw_available = True
            logger.info('ICM20948: ready on I2C 0x%02x', address)
        except Exception as e:
            logger.info('ICM20948: init failed - %s', e)

    def _read_hardware(self) -> Optional[Dict[str, Any]]:
        try:
            acc = self._sensor.acceleration
            mag = self._sensor.magnetic
        except Exception as e:
            logger.debug('ICM20948 read error: %s', e)
            return None

        return {
            'accel_x': round(acc[0], 2),
            'accel_y': round(acc[1], 2),
            'accel_z': round(acc[2], 2),
            'mag_x': round(mag[0], 2),
            'mag_y': round(mag[1], 2),
            'mag_z': round(mag[2], 2),
        }

    def _simulate(self) -> Dict[str, Any]:
        return {
            'accel_x': round(random.uniform(-2, 2), 2),
            'accel_y': round(random.uniform(-2, 2), 2),
            'accel_z': round(random.uniform(8, 11), 2),
            'mag_x': round(random.uniform(-50, 50), 2),
            'mag_y': round(random.uniform(-50, 50), 2),
            'mag_z': round(random.uniform(-50, 50), 2),
        }

    def channel_reading(self, channel: str, raw: Dict[str, Any]) -> Dict[str, Any]:
        ax, ay, az = raw['accel_x'], raw['accel_y'], raw['accel_z']
        heading = heading_degrees(raw['mag_x'], raw['mag_y'])

        if channel == "accelerometer":
            return {"x": ax, "y": ay, "z": az}
        if channel == "gyroscope":
            # Device orientation: alpha = heading, beta = pitch, gamma = roll
            beta = math.degrees(math.atan2(ay, az))
            gamma = math.degrees(math.atan2(-ax, math.sqrt(ay * ay + az * az)))
            return {"alpha": heading, "beta": round(beta, 1), "gamma": round(gamma, 1)}
        if channel == "magnetometer":
            return {"x": raw['mag_x'], "y": raw['mag_y'], "z": raw['mag_z'], "heading": heading}
        raise KeyError(channel)

    def close(self) -> None:
        self._sensor = None
