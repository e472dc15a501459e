"""TSL25911 light and IR driver (I2C).

Adafruit TSL2591 High Dynamic Range Digital Light Sensor. Serves the
ambientLight channel as illuminance in lux.

I2C Address: 0x29 (fixed)
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
    from adafruit_tsl2591 import TSL2591
    _lib_available = True
except ImportError:
    _lib_available = False


@register_driver("tsl25911")
class TSL25911Driver(SensorDriver):
    CHANNELS = ("ambientLight",)

    def _init_hardware(self) -> None:
        self._sensor = None
        if not _lib_available:
            logger.info('TSL25911: adafruit_tsl2591 library not installed')
            return

        try:
            i2c = busio.I2C(board.SCL, board.SDA)
            self._sensor = TSL2591(i2c)
            self._hw_available = True
            logger.info('TSL25911: ready on I2C 0x29')
        except Exception as e:
            logger.info('TSL25911: init failed - %s', e)

    def _read_hardware(self) -> Optional[Dict[str, Any]]:
        try:
            lux = self._sensor.lux
        except Exception as e:
            logger.debug('TSL25911 read error: %s', e)
            return None
        return {'lux': round(lux, 2) if lux is not None else 0}

    def _simulate(self) -> Dict[str, Any]:
        return {'lux': round(random.uniform(50, 500), 2)}

    def channel_reading(self, channel: str, raw: Dict[str, Any]) -> Dict[str, Any]:
        return {"illuminance": raw['lux']}

    def close(self) -> None:
        self._sensor = None
