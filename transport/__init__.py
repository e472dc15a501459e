"""Message transports: the send(targetId, payload) contract and its implementations."""

from transport.base import LoggingTransport, TransportAdapter
from transport.custom import CustomConnections
from transport.device_link import DeviceLink

__all__ = ["TransportAdapter", "LoggingTransport", "DeviceLink", "CustomConnections"]
