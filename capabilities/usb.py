"""Script ``usb`` object: USB serial ports through pyserial.

Ports are enumerated with serial.tools.list_ports and wrapped in
SerialPortHandle objects, which is what scripts pass back into connect,
send, read and friends. Continuous reads run on a per-port thread and
deliver bytes to the script callback via the scheduler. Every port
opened through this object is closed by close_all() on cleanup.

Failures never raise into the script: they are reported to the console
and the call returns False or None.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

import serial
from serial.tools import list_ports

from core.scheduler import Scheduler

logger = logging.getLogger(__name__)

PARITY = {
    "none": serial.PARITY_NONE,
    "even": serial.PARITY_EVEN,
    "odd": serial.PARITY_ODD,
    "mark": serial.PARITY_MARK,
    "space": serial.PARITY_SPACE,
}
STOP_BITS = {1: serial.STOPBITS_ONE, 2: serial.STOPBITS_TWO}

CONNECT_DEFAULTS = {
    "baudRate": 9600,
    "dataBits": 8,
    "stopBits": 1,
    "parity": "none",
    "bufferSize": 255,
    "flowControl": "none",
}

READ_TIMEOUT_MS = 5000
POLL_TIMEOUT = 0.1


class SerialPortHandle:
    """A serial port as seen by scripts."""

    def __init__(self, device: str, vid: Optional[int] = None, pid: Optional[int] = None,
                 description: str = ""):
        self.device = device
        self.vid = vid
        self.pid = pid
        self.description = description
        self.serial = None
        self.buffer_size = CONNECT_DEFAULTS["bufferSize"]
        self._reading = threading.Event()
        self._reader: Optional[threading.Thread] = None

    @classmethod
    def from_port_info(cls, info) -> "SerialPortHandle":
        return cls(info.device, info.vid, info.pid, info.description or "")

    @property
    def is_open(self) -> bool:
        return self.serial is not None and self.serial.is_open

    @property
    def reading(self) -> bool:
        return self._reading.is_set()

    def __repr__(self) -> str:
        return f"<SerialPort {self.device} vid={self.vid} pid={self.pid}>"


def _as_bytes(data: Union[str, bytes, bytearray, List[int]]) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


class UsbAPI:
    """usb.* operations over pyserial."""

    def __init__(
        self,
        scheduler: Scheduler,
        guard: Callable[[Callable], Callable],
        report: Callable[[str, str, list], None],
        open_port: Callable[..., Any] = serial.Serial,
        enumerate_ports: Callable[[], list] = list_ports.comports,
    ):
        self._scheduler = scheduler
        self._guard = guard
        self._report = report
        self._open_port = open_port
        self._enumerate = enumerate_ports
        self._handles: Dict[str, SerialPortHandle] = {}
        self._active: Dict[str, SerialPortHandle] = {}
        self.platform = {"isSupported": True, "hasPySerial": True}

    def _log(self, level: str, message: str, *args):
        self._report(level, f"[USB] {message}", list(args))

    def _post_log(self, level: str, message: str, *args):
        self._scheduler.post(self._report, level, f"[USB] {message}", list(args))

    def _handle(self, info) -> SerialPortHandle:
        handle = self._handles.get(info.device)
        if handle is None:
            handle = SerialPortHandle.from_port_info(info)
            self._handles[info.device] = handle
        return handle

    # -- discovery ----------------------------------------------------------

    def is_supported(self) -> bool:
        try:
            self._enumerate()
        except Exception as exc:
            logger.warning("Serial port enumeration failed: %s", exc)
            self._log("warn", "Serial ports cannot be enumerated on this host")
            return False
        return True

    def request_port(self, options: Optional[Dict[str, Any]] = None) -> Optional[SerialPortHandle]:
        """Return the first port matching options['filters'] (usbVendorId/usbProductId)."""
        filters = (options or {}).get("filters") or []
        try:
            ports = list(self._enumerate())
        except Exception as exc:
            self._log("error", "Failed to request USB port", str(exc))
            return None

        for info in ports:
            if not filters or any(
                (f.get("usbVendorId") is None or f.get("usbVendorId") == info.vid)
                and (f.get("usbProductId") is None or f.get("usbProductId") == info.pid)
                for f in filters
            ):
                self._log("info", "USB serial port access granted")
                return self._handle(info)

        self._log("warn", "No USB device selected")
        return None

    def get_ports(self) -> List[SerialPortHandle]:
        try:
            ports = [self._handle(info) for info in self._enumerate()]
        except Exception as exc:
            self._log("error", "Failed to get USB ports", str(exc))
            return []
        self._log("info", f"Found {len(ports)} authorized USB serial port(s)")
        return ports

    # -- connection ---------------------------------------------------------

    def connect(self, port: Optional[SerialPortHandle], options: Optional[Dict[str, Any]] = None) -> bool:
        if port is None:
            self._log("error", "Invalid port")
            return False
        if port.is_open:
            self._log("warn", "Port is already open")
            return False

        opts = dict(CONNECT_DEFAULTS)
        opts.update({k: v for k, v in (options or {}).items() if v})
        try:
            port.serial = self._open_port(
                port.device,
                baudrate=opts["baudRate"],
                bytesize=opts["dataBits"],
                stopbits=STOP_BITS.get(opts["stopBits"], serial.STOPBITS_ONE),
                parity=PARITY.get(opts["parity"], serial.PARITY_NONE),
                rtscts=opts["flowControl"] == "hardware",
                timeout=POLL_TIMEOUT,
            )
        except (serial.SerialException, ValueError) as exc:
            logger.warning("Serial open %s failed: %s", port.device, exc)
            self._log("error", "Failed to connect to USB port", str(exc))
            port.serial = None
            return False

        port.buffer_size = opts["bufferSize"]
        self._active[port.device] = port
        self._log("info", f"Connected to USB serial port at {opts['baudRate']} baud")
        return True

    def disconnect(self, port: Optional[SerialPortHandle]) -> bool:
        if port is None:
            self._log("error", "Invalid port")
            return False
        port._reading.clear()
        try:
            if port.serial is not None:
                port.serial.close()
        except serial.SerialException as exc:
            self._log("error", "Failed to disconnect from USB port", str(exc))
            return False
        finally:
            port.serial = None
            self._active.pop(port.device, None)
        self._log("info", "Disconnected from USB serial port")
        return True

    def _connected(self, port: Optional[SerialPortHandle]) -> bool:
        if port is None:
            self._log("error", "Invalid port")
            return False
        if port.device not in self._active or not port.is_open:
            self._log("error", "Port not connected")
            return False
        return True

    # -- I/O ----------------------------------------------------------------

    def send(self, port: Optional[SerialPortHandle], data: Union[str, bytes, List[int]]) -> bool:
        if not self._connected(port):
            return False
        payload = _as_bytes(data)
        try:
            port.serial.write(payload)
            port.serial.flush()
        except serial.SerialException as exc:
            self._log("error", "Failed to send data to USB port", str(exc))
            return False
        self._log("info", f"Sent {len(payload)} bytes to USB serial port")
        return True

    def read(self, port: Optional[SerialPortHandle], timeout_ms: Optional[int] = None) -> Optional[bytes]:
        """Blocking one-shot read: the first chunk received within timeout_ms."""
        if not self._connected(port):
            return None
        if port.reading:
            self._log("error", "Port is being read continuously")
            return None

        ser = port.serial
        previous = ser.timeout
        ser.timeout = (timeout_ms or READ_TIMEOUT_MS) / 1000.0
        try:
            data = ser.read(1)
            if data:
                data += ser.read(min(ser.in_waiting, port.buffer_size))
        except serial.SerialException as exc:
            self._log("error", "Failed to read from USB port", str(exc))
            return None
        finally:
            ser.timeout = previous

        if not data:
            self._log("warn", "Read timeout or no data available")
            return None
        self._log("info", f"Read {len(data)} bytes from USB serial port")
        return bytes(data)

    def start_reading(self, port: Optional[SerialPortHandle], callback: Callable[[bytes], None]) -> bool:
        if not self._connected(port):
            return False
        if port.reading:
            self._log("warn", "Already reading from this port")
            return True

        deliver = self._guard(callback)
        port._reading.set()
        port._reader = threading.Thread(
            target=self._read_loop, args=(port, deliver), daemon=True, name=f"usb-{port.device}"
        )
        port._reader.start()
        self._log("info", "Started continuous reading from USB serial port")
        return True

    def _read_loop(self, port: SerialPortHandle, deliver: Callable[[bytes], None]):
        ser = port.serial
        try:
            while port.reading:
                data = ser.read(max(1, min(ser.in_waiting, port.buffer_size)))
                if data and port.reading:
                    self._scheduler.post(self._deliver_if_reading, port, deliver, bytes(data))
        except serial.SerialException as exc:
            if port.reading:
                logger.warning("Serial %s disconnected: %s", port.device, exc)
                self._post_log("warn", "USB device disconnected", str(exc))
        except (OSError, TypeError, AttributeError) as exc:
            # Port closed underneath the reader
            logger.debug("Serial reader %s stopped: %s", port.device, exc)
        finally:
            port._reading.clear()

    @staticmethod
    def _deliver_if_reading(port: SerialPortHandle, deliver: Callable, data: bytes):
        if port.reading:
            deliver(data)

    def stop_reading(self, port: Optional[SerialPortHandle]) -> bool:
        if port is None:
            self._log("error", "Invalid port")
            return False
        if port.device not in self._active:
            self._log("warn", "Port not found in active ports")
            return False
        if not port.reading:
            self._log("warn", "Not currently reading from this port")
            return True
        port._reading.clear()
        self._log("info", "Stopped reading from USB serial port")
        return True

    # -- info and helpers ---------------------------------------------------

    def get_port_info(self, port: Optional[SerialPortHandle]) -> Optional[Dict[str, Any]]:
        if port is None:
            return None
        return {
            "portInfo": {"usbVendorId": port.vid, "usbProductId": port.pid},
            "connected": port.device in self._active,
            "readable": port.is_open,
            "writable": port.is_open,
        }

    def is_connected(self, port: Optional[SerialPortHandle]) -> bool:
        return port is not None and port.device in self._active

    @staticmethod
    def array_to_string(data) -> str:
        return bytes(data).decode("utf-8", errors="replace")

    @staticmethod
    def string_to_array(data: str) -> bytes:
        return data.encode("utf-8")

    @staticmethod
    def array_to_hex(data) -> str:
        return " ".join(f"{b:02x}" for b in bytes(data))

    def close_all(self) -> int:
        """Close every port opened through this object."""
        ports = list(self._active.values())
        for port in ports:
            port._reading.clear()
            try:
                port.serial.close()
            except (serial.SerialException, OSError, AttributeError) as exc:
                logger.warning("Error closing serial port %s: %s", port.device, exc)
            port.serial = None
        self._active.clear()
        return len(ports)

    isSupported = is_supported
    requestPort = request_port
    getPorts = get_ports
    startReading = start_reading
    stopReading = stop_reading
    getPortInfo = get_port_info
    isConnected = is_connected
    arrayToString = array_to_string
    stringToArray = string_to_array
    arrayToHex = array_to_hex
