"""
Boot Mode data structures.

All multi-byte values use big-endian byte order. Frequencies are in the
unit used on the wire: 10 kHz (a value of 1200 is 12.00 MHz).
"""

import struct
from dataclasses import dataclass
from typing import List, Union

from .constants import BootStatus, ErrorCode
from .exceptions import ConfigurationError, MalformedResponse


@dataclass(frozen=True)
class MultiplicationRatio:
    """Multiplication (x4) or division (/2) applied to an input clock."""
    value: int
    divide: bool = False

    def __post_init__(self):
        if not 1 <= self.value <= 0x7F:
            raise ValueError(f"Multiplication ratio out of range: {self.value}")

    @classmethod
    def from_byte(cls, raw: int) -> 'MultiplicationRatio':
        """Decode a signed ratio byte (negative values divide)."""
        value = struct.unpack('b', bytes([raw]))[0]
        if value == 0 or value == -0x80:
            raise MalformedResponse(f"Invalid multiplication ratio byte 0x{raw:02X}")
        return cls(abs(value), value < 0)

    def to_byte(self) -> int:
        """Encode as a signed ratio byte."""
        value = -self.value if self.divide else self.value
        return struct.pack('b', value)[0]

    @classmethod
    def parse(cls, text: str) -> 'MultiplicationRatio':
        """Parse "x4" or "/2"."""
        text = text.strip()
        if len(text) < 2 or text[0] not in "x/" or not text[1:].isdigit():
            raise ConfigurationError(f"Invalid multiplication ratio: {text!r}")
        try:
            return cls(int(text[1:]), text[0] == "/")
        except ValueError as e:
            raise ConfigurationError(f"Invalid multiplication ratio: {text!r}") from e

    def apply(self, frequency: int) -> Union[int, float]:
        """Frequency after applying this ratio."""
        if self.divide:
            return frequency / self.value
        return frequency * self.value

    def __str__(self) -> str:
        return f"{'/' if self.divide else 'x'}{self.value}"


@dataclass(frozen=True)
class FrequencyRange:
    """Inclusive operating frequency range of one clock line."""
    minimum: int
    maximum: int

    def __contains__(self, frequency) -> bool:
        return self.minimum <= frequency <= self.maximum

    def __str__(self) -> str:
        return f"{self.minimum}-{self.maximum}"


@dataclass(frozen=True)
class AddressRange:
    """Inclusive memory address range."""
    start: int
    end: int

    @classmethod
    def from_bytes(cls, data: bytes) -> 'AddressRange':
        start, end = struct.unpack('>II', data[:8])
        return cls(start, end)

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def __contains__(self, address) -> bool:
        return self.start <= address <= self.end

    def contains_range(self, other: 'AddressRange') -> bool:
        return self.start <= other.start and other.end <= self.end

    def __repr__(self) -> str:
        return f"AddressRange(0x{self.start:08X}-0x{self.end:08X})"


@dataclass(frozen=True)
class SupportedDevice:
    """Entry of the supported device inquiry response."""
    device_code: str
    series_name: str

    def __repr__(self) -> str:
        return f"SupportedDevice(code='{self.device_code}', series='{self.series_name}')"


@dataclass(frozen=True)
class BootStatusReport:
    """Boot program status inquiry response."""
    status: int
    error: int

    @classmethod
    def from_bytes(cls, data: bytes) -> 'BootStatusReport':
        if len(data) != 2:
            raise MalformedResponse(f"Boot status must be 2 bytes, got {len(data)}")
        return cls(data[0], data[1])

    @property
    def status_name(self) -> str:
        return BootStatus.name_of(self.status)

    @property
    def error_name(self) -> str:
        return ErrorCode.name_of(self.error)

    @property
    def ok(self) -> bool:
        return self.error == ErrorCode.NO_ERROR

    def __repr__(self) -> str:
        return f"BootStatusReport(status={self.status_name}, error={self.error_name})"


@dataclass(frozen=True)
class ImageRecord:
    """Contiguous run of image bytes starting at address."""
    address: int
    data: bytes

    @property
    def end(self) -> int:
        """Address one past the last byte."""
        return self.address + len(self.data)

    def __repr__(self) -> str:
        return f"ImageRecord(0x{self.address:08X}, {len(self.data)} bytes)"


def parse_address_ranges(data: bytes) -> List[AddressRange]:
    """
    Parse a count-prefixed list of address ranges.

    Format:
    - count: uint8
    - For each range:
      - start: uint32 (big-endian)
      - end: uint32 (big-endian, inclusive)
    """
    if not data:
        raise MalformedResponse("Empty area information")
    count = data[0]
    if len(data) != 1 + count * 8:
        raise MalformedResponse(
            f"Area information for {count} areas must be {1 + count * 8} bytes, got {len(data)}"
        )
    return [AddressRange.from_bytes(data[1 + i * 8:9 + i * 8]) for i in range(count)]
