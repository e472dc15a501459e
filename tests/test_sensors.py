"""
Tests for sensor drivers and the script ``sensor`` object
"""

import math

import pytest

from sensors.api import READING_CHANNELS, build_drivers
from sensors.base import SensorDriver
from sensors.icm20948 import ICM20948Driver, heading_degrees
from sensors.microphone import level_to_decibels


class FakeLightDriver(SensorDriver):
    CHANNELS = ("ambientLight",)
    RETRY_DELAY = 0

    def __init__(self, lux=120.0, fail=False):
        self.lux = lux
        self.fail = fail
        super().__init__({}, demo=False)

    def _init_hardware(self):
        self._hw_available = True

    def _read_hardware(self):
        if self.fail:
            raise OSError("i2c error")
        return {"lux": self.lux}

    def _simulate(self):
        return {"lux": 1.0}

    def channel_reading(self, channel, raw):
        return {"illuminance": raw["lux"]}


class FakeCamera:
    def capture(self, width, height, facing_mode):
        return b"\xff\xd8jpeg"


class FakeBiometric:
    method = "face"

    def __init__(self, ok=True):
        self.ok = ok

    def authenticate(self, prompt):
        if self.ok is None:
            raise RuntimeError("sensor busy")
        return self.ok


def test_unbound_channels_are_unsupported(make_runtime, scheduler, console):
    runtime = make_runtime()
    runtime.execute("")
    sensor = runtime.sensor
    for name in READING_CHANNELS:
        assert getattr(sensor, name).isSupported() is False
    for name in ("microphone", "camera", "biometric", "nfc", "lidar"):
        assert getattr(sensor, name).is_supported() is False
    assert sensor.platform.isHost is True
    assert sensor.platform.capabilities["hasProximity"] is False

    readings = []
    sensor.proximity.getCurrentReading(readings.append)
    scheduler.run_pending()
    assert readings == [None]
    assert console.has("[Sensor] Proximity sensor not supported", "warn")

    stop = sensor.lidar.watch(lambda r: None)
    stop()
    assert sensor.active_watches == 0


def test_reading_is_stamped_and_delivered(make_runtime, scheduler):
    runtime = make_runtime(sensor_drivers={"ambientLight": FakeLightDriver(lux=300)})
    runtime.execute("")
    readings = []
    runtime.sensor.ambientLight.getCurrentReading(readings.append)
    scheduler.run_until_idle()

    assert readings[0]["illuminance"] == 300
    assert isinstance(readings[0]["timestamp"], int)
    assert runtime.sensor.platform.capabilities["hasAmbientLight"] is True


def test_failed_hardware_read_gives_none(make_runtime, scheduler):
    driver = FakeLightDriver(fail=True)
    runtime = make_runtime(sensor_drivers={"ambientLight": driver})
    runtime.execute("")
    readings = []
    runtime.sensor.ambientLight.getCurrentReading(readings.append)
    scheduler.run_until_idle()
    assert readings == [None]
    assert driver.reliability == 0.0


def test_watch_stops_on_cleanup(make_runtime, console):
    runtime = make_runtime(sensor_drivers={"ambientLight": FakeLightDriver()})
    runtime.execute("")
    runtime.sensor.ambientLight.watch(lambda r: None, {"frequency": 10000})
    assert runtime.sensor.active_watches == 1
    assert console.has("[Sensor] Ambient light sensor watching started", "info")

    runtime.cleanup()
    assert runtime.sensor.active_watches == 0


def test_watch_stop_handle_reports(make_runtime, console):
    runtime = make_runtime(sensor_drivers={"ambientLight": FakeLightDriver()})
    runtime.execute("")
    stop = runtime.sensor.ambientLight.watch(lambda r: None, {"frequency": 10000})
    stop()
    stop()
    assert console.messages("info").count("[Sensor] Ambient light sensor watching stopped") == 1


def test_camera_capture_returns_data_url(make_runtime, scheduler):
    runtime = make_runtime(sensor_drivers={"camera": FakeCamera()})
    runtime.execute("")
    images = []
    assert runtime.sensor.camera.requestPermission()["granted"] is True
    runtime.sensor.camera.capture({"width": 320, "height": 240}, images.append)
    scheduler.run_until_idle()

    assert images[0]["dataUrl"].startswith("data:image/jpeg;base64,")
    assert images[0]["width"] == 320


def test_biometric_failure_is_not_authenticated(make_runtime, scheduler, console):
    runtime = make_runtime(sensor_drivers={"biometric": FakeBiometric(ok=None)})
    runtime.execute("")
    results = []
    runtime.sensor.biometric.authenticate({}, results.append)
    scheduler.run_until_idle()
    assert results[0]["authenticated"] is False
    assert results[0]["method"] == "other"
    assert console.has("Biometric authentication failed", "error")


def test_biometric_success(make_runtime, scheduler):
    runtime = make_runtime(sensor_drivers={"biometric": FakeBiometric(ok=True)})
    runtime.execute("")
    results = []
    runtime.sensor.biometric.authenticate(None, results.append)
    scheduler.run_until_idle()
    assert results[0]["authenticated"] is True
    assert results[0]["method"] == "face"


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------

def test_build_drivers_shares_one_instance_per_driver():
    drivers = build_drivers({
        "accelerometer": "icm20948",
        "magnetometer": {"driver": "icm20948"},
        "ambientLight": "no-such-driver",
    }, demo=True)
    assert set(drivers) == {"accelerometer", "magnetometer"}
    assert drivers["accelerometer"] is drivers["magnetometer"]


def test_demo_imu_channels():
    driver = ICM20948Driver({}, demo=True)
    assert driver.supports("gyroscope")
    assert not driver.supports("ambientLight")

    accel = driver.read_channel("accelerometer")
    assert set(accel) == {"x", "y", "z"}
    gyro = driver.read_channel("gyroscope")
    assert 0 <= gyro["alpha"] <= 360
    mag = driver.read_channel("magnetometer")
    assert set(mag) == {"x", "y", "z", "heading"}


def test_absent_imu_without_demo_is_unsupported():
    driver = ICM20948Driver({}, demo=False)
    if driver.simulated:
        assert not driver.supports("accelerometer")
        assert driver.read() is None


def test_heading_degrees():
    assert heading_degrees(1, 0) == 0.0
    assert heading_degrees(0, 1) == 90.0
    assert heading_degrees(-1, 0) == 180.0
    assert heading_degrees(0, -1) == 270.0


def test_level_to_decibels():
    assert level_to_decibels(100) == pytest.approx(0.0)
    assert level_to_decibels(10) == pytest.approx(-20.0)
    assert level_to_decibels(0) == -math.inf
