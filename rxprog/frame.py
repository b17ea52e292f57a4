"""
Frame parsing and building.

Command Format: [OPCODE][SIZE][PAYLOAD...][SUM]
- OPCODE: Command code
- SIZE: Payload length (0-255), omitted with SUM when there is no payload
- PAYLOAD: Command-specific data
- SUM: Two's complement of the 8-bit sum of OPCODE+SIZE+PAYLOAD

The 256-byte programming command has no SIZE field:
[0x50][ADDRESS (4)][DATA (256)][SUM]

Response Formats:
- Single byte: [CODE]
- Error: [ERROR CODE][ERROR] (no SUM)
- Sized: [CODE][SIZE (1, 2 or 4)][DATA...][SUM]
"""

import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple

from .checksum import Checksum
from .constants import (
    Command,
    DEVICE_CODE_LENGTH,
    END_OF_ERASURE,
    END_OF_PROGRAMMING,
    MAX_COMMAND_PAYLOAD,
    PROGRAMMING_SIZE,
    MemoryArea,
)
from .exceptions import ChecksumMismatch, MalformedResponse


class ParseResult(Enum):
    """Frame parse result codes."""
    OK = 0
    INCOMPLETE = 1
    CHECKSUM_ERROR = 2
    FORMAT_ERROR = 3
    ERROR = 4


@dataclass
class Frame:
    """Protocol frame structure."""
    cmd: int
    payload: bytes = field(default_factory=bytes)

    def __post_init__(self):
        if isinstance(self.payload, (list, tuple, bytearray)):
            self.payload = bytes(self.payload)
        if not 0 <= self.cmd <= 0xFF:
            raise ValueError(f"Frame code out of range: {self.cmd}")

    @property
    def payload_len(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class ResponseFormat:
    """
    Shape of the response expected for one command.

    Attributes:
        codes: Accepted first bytes of a successful response
        size_width: Width of the size field (0 for single-byte responses)
        error: First byte of the error response, None if the command has none
    """
    codes: Tuple[int, ...]
    size_width: int = 0
    error: Optional[int] = None

    @classmethod
    def single(cls, *codes: int, error: Optional[int] = None) -> 'ResponseFormat':
        return cls(tuple(codes), 0, error)

    @classmethod
    def sized(cls, code: int, size_width: int = 1,
              error: Optional[int] = None) -> 'ResponseFormat':
        return cls((code,), size_width, error)


def encode(command: int, payload: bytes = b"") -> bytes:
    """
    Encode a command frame.

    Commands without payload are sent as the bare opcode.

    Args:
        command: Command opcode
        payload: Command payload (at most 255 bytes)

    Returns:
        Complete frame bytes ready for transmission
    """
    return FrameBuilder.build(Frame(command, payload))


def decode(data: bytes, size_width: int = 1) -> Frame:
    """
    Decode and validate a sized frame.

    The checksum is verified before the size field is trusted.

    Args:
        data: Complete frame bytes
        size_width: Width of the size field in bytes

    Returns:
        Decoded Frame

    Raises:
        MalformedResponse: If the frame is too short or its size field
            does not match the received length
        ChecksumMismatch: If checksum recomputation fails
    """
    data = bytes(data)
    if len(data) == 1:
        return Frame(data[0])
    if len(data) < 1 + size_width + 1:
        raise MalformedResponse(f"Frame too short ({len(data)} bytes)")

    expected = Checksum.calculate(data[:-1])
    if expected != data[-1]:
        raise ChecksumMismatch(expected, data[-1])

    size = int.from_bytes(data[1:1 + size_width], "big")
    if len(data) != 1 + size_width + size + 1:
        raise MalformedResponse(
            f"Declared size {size} does not match frame length {len(data)}"
        )
    return Frame(data[0], data[1 + size_width:-1])


class FrameBuilder:
    """Builds command frames for transmission."""

    @staticmethod
    def build(frame: Frame) -> bytes:
        """
        Build complete command frame with checksum.

        Args:
            frame: Frame object with cmd and payload

        Returns:
            Complete frame bytes ready for transmission
        """
        if not frame.payload:
            return bytes([frame.cmd])
        if len(frame.payload) > MAX_COMMAND_PAYLOAD:
            raise ValueError(f"Payload exceeds maximum size ({MAX_COMMAND_PAYLOAD})")

        data = bytes([frame.cmd, len(frame.payload)]) + frame.payload
        return data + bytes([Checksum.calculate(data)])

    @staticmethod
    def build_device_selection(device_code: str) -> bytes:
        """Build device selection frame."""
        code = device_code.encode("ascii")
        if len(code) != DEVICE_CODE_LENGTH:
            raise ValueError(f"Device code must be {DEVICE_CODE_LENGTH} characters: {device_code!r}")
        return FrameBuilder.build(Frame(Command.DEVICE_SELECTION, code))

    @staticmethod
    def build_clock_mode_selection(mode: int) -> bytes:
        """Build clock mode selection frame."""
        return FrameBuilder.build(Frame(Command.CLOCK_MODE_SELECTION, bytes([mode])))

    @staticmethod
    def build_new_bit_rate_selection(bit_rate: int, input_frequency: int,
                                     ratios: Sequence[int]) -> bytes:
        """
        Build new bit rate selection frame.

        Args:
            bit_rate: Bit rate in bps (sent divided by 100)
            input_frequency: Input frequency in units of 10 kHz
            ratios: Encoded multiplication ratio bytes, one per clock line
        """
        payload = struct.pack('>HHB', bit_rate // 100, input_frequency, len(ratios))
        payload += bytes(ratios)
        return FrameBuilder.build(Frame(Command.NEW_BIT_RATE_SELECTION, payload))

    @staticmethod
    def build_program(address: int, data: bytes) -> bytes:
        """Build 256-byte programming frame (no size field)."""
        if len(data) != PROGRAMMING_SIZE:
            raise ValueError(f"Programming data must be {PROGRAMMING_SIZE} bytes")
        frame = struct.pack('>BI', Command.PROGRAM, address) + bytes(data)
        return frame + bytes([Checksum.calculate(frame)])

    @staticmethod
    def build_end_programming() -> bytes:
        """Build end-of-programming frame."""
        frame = struct.pack('>BI', Command.PROGRAM, END_OF_PROGRAMMING)
        return frame + bytes([Checksum.calculate(frame)])

    @staticmethod
    def build_block_erasure(block: int) -> bytes:
        """Build block erasure frame."""
        return FrameBuilder.build(Frame(Command.BLOCK_ERASURE, bytes([block])))

    @staticmethod
    def build_end_erasure() -> bytes:
        """Build end-of-erasure frame."""
        return FrameBuilder.build_block_erasure(END_OF_ERASURE)

    @staticmethod
    def build_memory_read(area: MemoryArea, address: int, size: int) -> bytes:
        """Build memory read frame."""
        payload = struct.pack('>BII', area, address, size)
        return FrameBuilder.build(Frame(Command.MEMORY_READ, payload))

    @staticmethod
    def build_lock_bit(command: Command, area: MemoryArea, address: int) -> bytes:
        """Build lock bit status read or lock bit program frame."""
        payload = bytes([
            area,
            (address >> 8) & 0xFF,
            (address >> 16) & 0xFF,
            (address >> 24) & 0xFF,
        ])
        return FrameBuilder.build(Frame(command, payload))


class FrameParser:
    """Parses one response frame of a known format from a byte stream."""

    def __init__(self, fmt: ResponseFormat):
        self.fmt = fmt
        self._buffer = bytearray()

    def feed(self, data: bytes) -> None:
        """Add data to parse buffer."""
        self._buffer.extend(data)

    def parse(self) -> Tuple[ParseResult, Optional[Frame], int]:
        """
        Attempt to parse a response from the buffer.

        Returns:
            Tuple of (result, frame, consumed_bytes)
            - result: ParseResult indicating success or error type
            - frame: Parsed Frame; the error pair for ERROR, the raw
              frame bytes as payload for CHECKSUM_ERROR
            - consumed_bytes: Number of bytes consumed from buffer
        """
        if not self._buffer:
            return (ParseResult.INCOMPLETE, None, 0)

        code = self._buffer[0]

        # Error response: [ERROR CODE][ERROR]
        if self.fmt.error is not None and code == self.fmt.error:
            if len(self._buffer) < 2:
                return (ParseResult.INCOMPLETE, None, 0)
            frame = Frame(code, bytes(self._buffer[1:2]))
            self._buffer = self._buffer[2:]
            return (ParseResult.ERROR, frame, 2)

        if code not in self.fmt.codes:
            self._buffer = self._buffer[1:]
            return (ParseResult.FORMAT_ERROR, Frame(code), 1)

        if self.fmt.size_width == 0:
            self._buffer = self._buffer[1:]
            return (ParseResult.OK, Frame(code), 1)

        expected_size = self._expected_size()
        if expected_size is None or len(self._buffer) < expected_size:
            return (ParseResult.INCOMPLETE, None, 0)

        data = bytes(self._buffer[:expected_size])
        self._buffer = self._buffer[expected_size:]
        if not Checksum.verify(data):
            return (ParseResult.CHECKSUM_ERROR, Frame(code, data), expected_size)

        return (ParseResult.OK, Frame(code, data[1 + self.fmt.size_width:-1]), expected_size)

    def _expected_size(self) -> Optional[int]:
        header = 1 + self.fmt.size_width
        if len(self._buffer) < header:
            return None
        size = int.from_bytes(self._buffer[1:header], "big")
        return header + size + 1

    @property
    def buffer_size(self) -> int:
        """Get current buffer size."""
        return len(self._buffer)

    @property
    def bytes_needed(self) -> int:
        """Number of bytes to read before the next parse can make progress."""
        if not self._buffer:
            return 1
        code = self._buffer[0]
        if self.fmt.error is not None and code == self.fmt.error:
            return max(2 - len(self._buffer), 1)
        if self.fmt.size_width == 0 or code not in self.fmt.codes:
            return 1
        expected_size = self._expected_size()
        if expected_size is None:
            return 1 + self.fmt.size_width - len(self._buffer)
        return max(expected_size - len(self._buffer), 1)
