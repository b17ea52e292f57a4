"""Scripted in-memory channel and response builders for tests."""

import struct
from typing import List, Optional, Sequence, Tuple

from rxprog.checksum import Checksum
from rxprog.constants import Command
from rxprog.data import ImageRecord, MultiplicationRatio
from rxprog.frame import FrameBuilder, encode
from rxprog.params import ConnectionParameters
from rxprog.transport import BaseTransport

Step = Tuple[bytes, bytes]


def sized(code: int, data: bytes, width: int = 1) -> bytes:
    """Sized response frame with a valid checksum."""
    frame = bytes([code]) + len(data).to_bytes(width, "big") + bytes(data)
    return frame + bytes([Checksum.calculate(frame)])


def with_sum(data: bytes) -> bytes:
    """Append the frame checksum to data."""
    return bytes(data) + bytes([Checksum.calculate(data)])


def areas(*ranges: Tuple[int, int]) -> bytes:
    """Count-prefixed address range list."""
    return bytes([len(ranges)]) + b"".join(struct.pack('>II', start, end) for start, end in ranges)


class MockChannel(BaseTransport):
    """
    Channel that replays a script of (expected write, reply) steps.

    Each write must equal the next step's expected bytes; its reply is then
    queued for reading. Writes past the end of the script get no reply and
    are collected in `extra`. A read with nothing queued returns b"",
    which is how a real channel reports a timeout.
    """

    def __init__(self, script: Sequence[Step] = ()):
        self.script: List[Step] = list(script)
        self.writes: List[bytes] = []
        self.extra: List[bytes] = []
        self.baud_rates: List[int] = []
        self.mismatch: Optional[Tuple[bytes, bytes]] = None
        self._rx = bytearray()
        self._open = False
        self.flushed = 0

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def read(self, size: int, timeout: float) -> bytes:
        data = bytes(self._rx[:size])
        del self._rx[:size]
        return data

    def write(self, data: bytes) -> int:
        data = bytes(data)
        self.writes.append(data)
        if not self.script:
            self.extra.append(data)
            return len(data)
        expected, reply = self.script.pop(0)
        if data != expected:
            self.mismatch = (expected, data)
            raise AssertionError(f"Expected write {expected.hex(' ')}, got {data.hex(' ')}")
        self._rx.extend(reply)
        return len(data)

    def set_baud_rate(self, baudrate: int) -> None:
        self.baud_rates.append(baudrate)

    def flush(self) -> None:
        self.flushed += 1
        self._rx.clear()

    @property
    def finished(self) -> bool:
        """True when every scripted step was consumed and nothing else was sent."""
        return not self.script and not self.extra


# === Scripted target ===
USER_AREA = (0xFFFF0000, 0xFFFFFFFF)
ERASURE_BLOCKS = [(0xFFFF0000, 0xFFFF7FFF), (0xFFFF8000, 0xFFFFFFFF)]

# Three records spanning four 256-byte pages
RECORDS = [
    ImageRecord(0xFFFF0000, bytes(range(16))),
    ImageRecord(0xFFFF0100, b"\xA5" * 300),
    ImageRecord(0xFFFF8000, b"\x12\x34\x56\x78"),
]
PAGES = [
    (0xFFFF0000, bytes(range(16)) + b"\xFF" * 240),
    (0xFFFF0100, b"\xA5" * 256),
    (0xFFFF0200, b"\xA5" * 44 + b"\xFF" * 212),
    (0xFFFF8000, b"\x12\x34\x56\x78" + b"\xFF" * 252),
]


def connect_steps():
    return [(b"\x00", b"\x00"), (b"\x55", b"\xE6")]


def negotiate_steps(device="7805", clock_mode=0):
    return connect_steps() + [
        (FrameBuilder.build_device_selection(device), b"\x06"),
        (FrameBuilder.build_clock_mode_selection(clock_mode), b"\x06"),
    ]


def ready_steps(params):
    return [
        (FrameBuilder.build_new_bit_rate_selection(
            params.bit_rate, params.input_frequency,
            [r.to_byte() for r in params.multiplication_ratios]), b"\x06"),
        (encode(Command.NEW_BIT_RATE_CONFIRMATION), b"\x06"),
        (encode(Command.USER_AREA_INFORMATION_INQUIRY), sized(0x35, areas(USER_AREA))),
        (encode(Command.ERASURE_BLOCK_INFORMATION_INQUIRY), sized(0x36, areas(*ERASURE_BLOCKS), 2)),
        (encode(Command.PROGRAMMING_SIZE_INQUIRY), sized(0x37, b"\x01\x00")),
        (encode(Command.PROGRAMMING_ERASURE_STATE_TRANSITION), b"\x26"),
    ]


def erase_steps():
    return [
        (encode(Command.ERASURE_SELECTION), b"\x06"),
        (FrameBuilder.build_block_erasure(0), b"\x06"),
        (FrameBuilder.build_block_erasure(1), b"\x06"),
        (FrameBuilder.build_end_erasure(), b"\x06"),
    ]


def program_steps(pages=PAGES):
    steps = [(encode(Command.USER_AREA_PROGRAMMING_SELECTION), b"\x06")]
    steps += [(FrameBuilder.build_program(address, data), b"\x06") for address, data in pages]
    steps.append((FrameBuilder.build_end_programming(), b"\x06"))
    return steps


def user_area_checksum(records=RECORDS):
    start, end = USER_AREA
    image = bytearray(b"\xFF" * (end - start + 1))
    for record in records:
        offset = record.address - start
        image[offset:offset + len(record.data)] = record.data
    return sum(image) & 0xFFFFFFFF


def checksum_step(value):
    return (encode(Command.USER_AREA_CHECKSUM), sized(0x5B, struct.pack('>I', value)))


def make_params(family="rx200", ratios=("x4", "x2")):
    return ConnectionParameters(
        port="/dev/ttyUSB0",
        device="7805",
        clock_mode=0,
        input_frequency=1200,
        multiplication_ratios=tuple(MultiplicationRatio.parse(r) for r in ratios),
        bit_rate=115200,
        family=family,
    )
