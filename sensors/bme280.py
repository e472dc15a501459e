"""BME280 environmental driver (I2C).

Combined temperature, humidity and barometric pressure sensor. Serves
the temperature, humidity and barometer channels, which otherwise
report isSupported() == False.

I2C Address: 0x76 (can be 0x77 with jumper)
"""

import random
import logging
from typing import Any, Dict, Optional

from core.registry import register_driver
from sensors.base import SensorDriver

logger = logging.getLogger(__name__)

try:
    import board
    import busio
    from adafruit_bme280 import basic as adafruit_bme280
    _lib_available = True
except ImportError:
    _lib_available = False


@register_driver("bme280")
class BME280Driver(SensorDriver):
    CHANNELS = ("temperature", "humidity", "barometer")

    def _init_hardware(self) -> None:
        self._sensor = None
        if not _lib_available:
            logger.info('BME280: adafruit_bme280 library not installed')
            return

        address = self._cfg.get("address", 0x76)
        try:
            i2c = busio.I2C(board.SCL, board.SDA)
            self._sensor = adafruit_bme280.Adafruit_BME280_I2C(i2c, address=address)
            self._sensor.sea_level_pressure = self._cfg.get("sea_level_pressure", 1013.25)
            self._hw_available = True
            logger.info('BME280: ready on I2C 0x%02x', address)
        except Exception as e:
            logger.info('BME280: init failed - %s', e)

    def _read_hardware(self) -> Optional[Dict[str, Any]]:
        try:
            return {
                'temperature': round(self._sensor.temperature, 1),
                'humidity': round(self._sensor.humidity, 1),
                'pressure': round(self._sensor.pressure, 1),
                'altitude': round(self._sensor.altitude, 1),
            }
        except Exception as e:
            logger.debug('BME280 read error: %s', e)
            return None

    def _simulate(self) -> Dict[str, Any]:
        return {
            'temperature': round(random.uniform(18, 26), 1),
            'humidity': round(random.uniform(30, 60), 1),
            'pressure': round(random.uniform(990, 1030), 1),
            'altitude': round(random.uniform(0, 100), 1),
        }

    def channel_reading(self, channel: str, raw: Dict[str, Any]) -> Dict[str, Any]:
        if channel == "temperature":
            celsius = raw['temperature']
            return {"celsius": celsius, "fahrenheit": round(celsius * 9 / 5 + 32, 1)}
        if channel == "humidity":
            return {"relativeHumidity": raw['humidity']}
        if channel == "barometer":
            return {"pressure": raw['pressure'], "altitude": raw['altitude']}
        raise KeyError(channel)

    def close(self) -> None:
        self._sensor = None
