"""
Serial transport layer.

Defines the duplex byte channel the protocol engine talks through and its
pyserial implementation. Reads are synchronous: the Boot Mode protocol is
strictly half-duplex, so no background receive thread is needed.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import serial
import serial.tools.list_ports

from .constants import DEFAULT_BAUD_RATE
from .exceptions import TransportError

logger = logging.getLogger(__name__)


class BaseTransport(ABC):
    """
    Abstract duplex byte channel.

    Implementations must return an empty bytes object from read() when the
    timeout elapses without data, and raise TransportError on channel
    failure.
    """

    @abstractmethod
    def open(self) -> None:
        """Open the channel."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        ...

    @abstractmethod
    def read(self, size: int, timeout: float) -> bytes:
        """
        Read up to size bytes.

        Args:
            size: Maximum number of bytes to return
            timeout: Seconds to wait for the first byte

        Returns:
            Received bytes (empty if timeout)
        """
        ...

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write all of data, blocking until it has been sent."""
        ...

    @abstractmethod
    def set_baud_rate(self, baudrate: int) -> None:
        """Change the channel's baud rate."""
        ...

    @abstractmethod
    def flush(self) -> None:
        """Discard any buffered input and output."""
        ...

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    def __enter__(self) -> 'BaseTransport':
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class SerialTransport(BaseTransport):
    """Serial port channel (8N1, no flow control)."""

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUD_RATE,
        write_timeout: Optional[float] = 10.0
    ):
        """
        Initialize serial transport.

        Args:
            port: Serial port name (e.g., '/dev/ttyUSB0' or 'COM3')
            baudrate: Initial baud rate (default: 9600)
            write_timeout: Seconds to wait for a write to complete
        """
        self.port = port
        self.baudrate = baudrate
        self.write_timeout = write_timeout
        self._serial: Optional[serial.Serial] = None

    def open(self) -> None:
        """Open serial port."""
        try:
            self._serial = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                xonxoff=False,
                rtscts=False,
                timeout=0,
                write_timeout=self.write_timeout
            )
            logger.info(f"Opened serial port {self.port} at {self.baudrate} bps")
        except serial.SerialException as e:
            raise TransportError(f"Failed to open {self.port}: {e}") from e

    def close(self) -> None:
        """Close serial port."""
        if self._serial:
            try:
                self._serial.close()
            except serial.SerialException as e:
                logger.warning(f"Error closing {self.port}: {e}")
            self._serial = None
            logger.info(f"Closed serial port {self.port}")

    def _port(self) -> serial.Serial:
        if not self._serial or not self._serial.is_open:
            raise TransportError("Serial port not open")
        return self._serial

    def read(self, size: int, timeout: float) -> bytes:
        port = self._port()
        try:
            port.timeout = max(timeout, 0)
            data = port.read(size)
        except serial.SerialException as e:
            raise TransportError(f"Receive failed: {e}") from e
        if data:
            logger.debug(f"RX ({len(data)} bytes): {data.hex(' ')}")
        return data

    def write(self, data: bytes) -> int:
        """
        Send data over serial port.

        Args:
            data: Bytes to send

        Returns:
            Number of bytes sent

        Raises:
            TransportError: If port is not open or the write fails
        """
        port = self._port()
        try:
            count = port.write(data)
            port.flush()
        except serial.SerialException as e:
            raise TransportError(f"Send failed: {e}") from e
        logger.debug(f"TX ({count} bytes): {data.hex(' ')}")
        return count

    def set_baud_rate(self, baudrate: int) -> None:
        port = self._port()
        try:
            port.baudrate = baudrate
        except (serial.SerialException, ValueError) as e:
            raise TransportError(f"Cannot set {self.port} to {baudrate} bps: {e}") from e
        self.baudrate = baudrate
        logger.debug(f"Baud rate set to {baudrate} bps")

    def flush(self) -> None:
        """Flush serial buffers."""
        port = self._port()
        try:
            port.reset_input_buffer()
            port.reset_output_buffer()
        except serial.SerialException as e:
            raise TransportError(f"Flush failed: {e}") from e

    @property
    def is_open(self) -> bool:
        """Check if port is open."""
        return self._serial is not None and self._serial.is_open

    def __repr__(self) -> str:
        status = "open" if self.is_open else "closed"
        return f"SerialTransport({self.port}, {self.baudrate}, {status})"


def list_ports() -> List[str]:
    """Names of the serial ports present on this machine."""
    return sorted(info.device for info in serial.tools.list_ports.comports())
