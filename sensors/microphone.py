"""Analog microphone level driver (electret module via ADS1115 ADC).

The module's analog output (AO) is read through an ADS1115 channel,
giving a continuous sound level (0-100%) for the microphone channel's
watchLevel(). Decibels are relative to full scale, so a silent input
reports -inf.

I2C Address: 0x48 (ADC)
"""

import math
import random
import logging
from typing import Any, Dict, Optional

from core.registry import register_driver
from sensors.base import SensorDriver

logger = logging.getLogger(__name__)

try:
    import board
    import busio
    import adafruit_ads1x15.ads1115 as ADS
    from adafruit_ads1x15.analog_in import AnalogIn
    _lib_available = True
except ImportError:
    _lib_available = False


def level_to_decibels(level: float) -> float:
    if level <= 0:
        return float("-inf")
    return round(20 * math.log10(level / 100.0), 1)


@register_driver("ads1115-mic")
class MicrophoneDriver(SensorDriver):
    CHANNELS = ("microphone",)

    def _init_hardware(self) -> None:
        self._input = None
        self._sim_level = 10.0
        if not _lib_available:
            logger.info("Microphone: adafruit-ads1x15 not installed")
            return

        channel = self._cfg.get("adc_channel", 0)
        try:
            i2c = busio.I2C(board.SCL, board.SDA)
            ads = ADS.ADS1115(i2c, address=self._cfg.get("address", 0x48))
            ads.gain = 1  # +/-4.096V range
            self._input = AnalogIn(ads, getattr(ADS, f"P{channel}"))
            self._hw_available = True
            logger.info("Microphone: ready on ADC channel A%d", channel)
        except Exception as exc:
            logger.info("Microphone: ADC init failed - %s", exc)

    def _read_hardware(self) -> Optional[Dict[str, Any]]:
        voltage = self._input.voltage
        if voltage is None:
            return None
        level = max(0.0, min(100.0, (voltage / 3.3) * 100.0))
        return {"sound_level": round(level, 1)}

    def _simulate(self) -> Dict[str, Any]:
        self._sim_level = self._sim_level * 0.85 + 10.0 * 0.15
        if random.random() < 0.08:
            self._sim_level += random.uniform(20, 60)
        self._sim_level = max(0, min(100, self._sim_level + random.gauss(0, 2)))
        return {"sound_level": round(self._sim_level, 1)}

    def channel_reading(self, channel: str, raw: Dict[str, Any]) -> Dict[str, Any]:
        level = raw["sound_level"]
        return {"level": level, "decibels": level_to_decibels(level)}

    def close(self) -> None:
        self._input = None
