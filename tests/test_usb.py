"""
Tests for the ``usb`` object over a fake pyserial port
"""

import threading
from types import SimpleNamespace

import pytest
import serial

from capabilities.usb import UsbAPI


class FakeSerial:
    """Stands in for serial.Serial: records writes, serves queued reads."""

    def __init__(self, device, **kwargs):
        self.device = device
        self.kwargs = kwargs
        self.timeout = kwargs.get("timeout")
        self.is_open = True
        self.written = b""
        self.incoming = bytearray()
        self.lock = threading.Lock()

    @property
    def in_waiting(self):
        with self.lock:
            return len(self.incoming)

    def read(self, size=1):
        with self.lock:
            chunk = bytes(self.incoming[:size])
            del self.incoming[:size]
        if not chunk:
            threading.Event().wait(0.01)
        return chunk

    def write(self, data):
        self.written += data
        return len(data)

    def flush(self):
        pass

    def close(self):
        self.is_open = False


PORTS = [
    SimpleNamespace(device="/dev/ttyUSB0", vid=0x2341, pid=0x0043, description="Arduino Uno"),
    SimpleNamespace(device="/dev/ttyACM0", vid=0x10C4, pid=0xEA60, description="CP2102"),
]


@pytest.fixture
def opened():
    return []


@pytest.fixture
def usb(scheduler, console, opened):
    def open_port(device, **kwargs):
        port = FakeSerial(device, **kwargs)
        opened.append(port)
        return port

    api = UsbAPI(scheduler, lambda cb: cb, console, open_port=open_port, enumerate_ports=lambda: PORTS)
    yield api
    api.close_all()


def test_request_port_applies_filters(usb, console):
    port = usb.requestPort({"filters": [{"usbVendorId": 0x10C4}]})
    assert port.device == "/dev/ttyACM0"
    assert console.has("[USB] USB serial port access granted", "info")

    assert usb.requestPort({"filters": [{"usbVendorId": 0xFFFF}]}) is None
    assert console.has("[USB] No USB device selected", "warn")


def test_get_ports_reuses_handles(usb):
    first = usb.getPorts()
    second = usb.getPorts()
    assert [p.device for p in first] == ["/dev/ttyUSB0", "/dev/ttyACM0"]
    assert first[0] is second[0]


def test_connect_uses_defaults_and_options(usb, opened):
    port = usb.requestPort()
    assert usb.connect(port, {"baudRate": 115200, "parity": "even"}) is True
    kwargs = opened[0].kwargs
    assert kwargs["baudrate"] == 115200
    assert kwargs["bytesize"] == 8
    assert kwargs["parity"] == serial.PARITY_EVEN
    assert usb.isConnected(port)

    assert usb.connect(port) is False


def test_connect_failure_is_reported(scheduler, console):
    def open_port(device, **kwargs):
        raise serial.SerialException("permission denied")

    api = UsbAPI(scheduler, lambda cb: cb, console, open_port=open_port, enumerate_ports=lambda: PORTS)
    port = api.requestPort()
    assert api.connect(port) is False
    assert console.has("[USB] Failed to connect to USB port", "error")
    assert not api.isConnected(port)


def test_send_requires_connection(usb, console, opened):
    port = usb.requestPort()
    assert usb.send(port, "x") is False
    assert console.has("[USB] Port not connected", "error")

    usb.connect(port)
    assert usb.send(port, "G1 X10\n") is True
    assert usb.send(port, [1, 2, 3]) is True
    assert opened[0].written == b"G1 X10\n\x01\x02\x03"


def test_read_returns_available_bytes(usb, opened, console):
    port = usb.requestPort()
    usb.connect(port)
    opened[0].incoming.extend(b"OK\r\n")
    assert usb.read(port, 100) == b"OK\r\n"

    assert usb.read(port, 10) is None
    assert console.has("[USB] Read timeout or no data available", "warn")


def test_start_reading_posts_chunks_to_scheduler(usb, opened, scheduler):
    port = usb.requestPort()
    usb.connect(port)
    chunks = []
    assert usb.startReading(port, chunks.append) is True
    opened[0].incoming.extend(b"hello")

    for _ in range(200):
        scheduler.run_pending()
        if chunks:
            break
        threading.Event().wait(0.01)
    assert b"".join(chunks).startswith(b"h")
    assert usb.stopReading(port) is True
    assert not port.reading


def test_disconnect_and_port_info(usb):
    port = usb.requestPort()
    usb.connect(port)
    info = usb.getPortInfo(port)
    assert info == {
        "portInfo": {"usbVendorId": 0x2341, "usbProductId": 0x0043},
        "connected": True,
        "readable": True,
        "writable": True,
    }
    assert usb.disconnect(port) is True
    assert usb.getPortInfo(port)["connected"] is False


def test_close_all_closes_open_ports(usb, opened):
    for port in usb.getPorts():
        usb.connect(port)
    assert usb.close_all() == 2
    assert all(not p.is_open for p in opened)


def test_byte_helpers():
    assert UsbAPI.arrayToString(b"hi") == "hi"
    assert UsbAPI.stringToArray("hi") == b"hi"
    assert UsbAPI.arrayToHex([0, 15, 255]) == "00 0f ff"


def test_runtime_cleanup_closes_ports(make_runtime, opened):
    def open_port(device, **kwargs):
        port = FakeSerial(device, **kwargs)
        opened.append(port)
        return port

    runtime = make_runtime(usb_options={"open_port": open_port, "enumerate_ports": lambda: PORTS})
    runtime.execute("port = usb.requestPort()\nusb.connect(port)")
    assert opened[0].is_open
    runtime.cleanup()
    assert not opened[0].is_open
