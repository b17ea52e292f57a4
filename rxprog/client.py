"""
Boot Mode command client.

One method per Boot Mode command: each sends a single command frame and
parses its response. The client keeps no state of its own; sequencing is
enforced by the Negotiator, CapabilityQuery and Programmer built on it.
"""

import logging
import struct
from typing import List, Optional, Sequence

from .constants import (
    ACK,
    BIT_RATE_MATCH,
    BIT_RATE_MATCH_FAILED,
    BIT_RATE_MATCH_OK,
    DATA_AREA_AVAILABLE,
    DATA_AREA_UNAVAILABLE,
    Command,
    ErrorCode,
    LockBitStatus,
    MemoryArea,
    Response,
)
from .data import (
    AddressRange,
    BootStatusReport,
    FrequencyRange,
    MultiplicationRatio,
    SupportedDevice,
    parse_address_ranges,
)
from .exceptions import (
    CommandRejected,
    MalformedResponse,
    NegotiationFailed,
)
from .frame import Frame, FrameBuilder, ResponseFormat, encode
from .session import Session

logger = logging.getLogger(__name__)

ACK_ONLY = ResponseFormat.single(ACK)


def _ack(command: Command) -> ResponseFormat:
    return ResponseFormat.single(ACK, error=command.error)


class BootModeClient:
    """Boot Mode command exchanges over a Session."""

    def __init__(self, session: Session, erase_timeout: Optional[float] = None):
        """
        Initialize client.

        Args:
            session: Transport session
            erase_timeout: Response timeout for erase and blank check
                commands (None uses the session default)
        """
        self.session = session
        self.erase_timeout = erase_timeout

    def _simple(self, command: Command) -> Frame:
        return self.session.exchange(encode(command), ResponseFormat.sized(
            _SIZED_RESPONSES[command]))

    # === Connection ===

    def match_bit_rate(self) -> None:
        """
        Complete bit-rate matching after the target echoed a probe byte.

        Raises:
            NegotiationFailed: If the target reports matching failed
        """
        fmt = ResponseFormat.single(BIT_RATE_MATCH_OK, BIT_RATE_MATCH_FAILED)
        frame = self.session.exchange(bytes([BIT_RATE_MATCH]), fmt)
        if frame.cmd == BIT_RATE_MATCH_FAILED:
            raise NegotiationFailed("Target reported bit rate matching failed")
        logger.info("Bit rate matched")

    # === Inquiry/selection ===

    def supported_devices(self) -> List[SupportedDevice]:
        """
        Query supported devices.

        Format:
        - count: uint8
        - For each device:
          - length: uint8 (device code + series name)
          - device code: 4 ASCII characters
          - series name: ASCII
        """
        data = self._simple(Command.SUPPORTED_DEVICE_INQUIRY).payload
        if not data:
            raise MalformedResponse("Empty supported device list")

        devices = []
        idx = 1
        for _ in range(data[0]):
            if idx >= len(data):
                raise MalformedResponse("Supported device list truncated")
            length = data[idx]; idx += 1
            entry = data[idx:idx + length]; idx += length
            if length < 4 or len(entry) != length:
                raise MalformedResponse("Supported device entry truncated")
            devices.append(SupportedDevice(
                entry[:4].decode("ascii", errors="replace"),
                entry[4:].decode("ascii", errors="replace"),
            ))
        if idx != len(data):
            raise MalformedResponse("Trailing bytes after supported device list")
        return devices

    def select_device(self, device_code: str) -> None:
        """Select device by its four character code."""
        self.session.exchange(
            FrameBuilder.build_device_selection(device_code),
            _ack(Command.DEVICE_SELECTION)
        )
        logger.info(f"Selected device {device_code}")

    def clock_modes(self) -> List[int]:
        """Query available clock modes."""
        return list(self._simple(Command.CLOCK_MODE_INQUIRY).payload)

    def select_clock_mode(self, mode: int) -> None:
        """Select clock mode."""
        self.session.exchange(
            FrameBuilder.build_clock_mode_selection(mode),
            _ack(Command.CLOCK_MODE_SELECTION)
        )
        logger.info(f"Selected clock mode {mode}")

    def multiplication_ratios(self) -> List[List[MultiplicationRatio]]:
        """
        Query multiplication ratios per clock line.

        Format:
        - clock count: uint8
        - For each clock line:
          - ratio count: uint8
          - ratios: int8 each (negative divides)
        """
        data = self._simple(Command.MULTIPLICATION_RATIO_INQUIRY).payload
        if not data:
            raise MalformedResponse("Empty multiplication ratio list")

        clocks = []
        idx = 1
        for _ in range(data[0]):
            if idx >= len(data):
                raise MalformedResponse("Multiplication ratio list truncated")
            count = data[idx]; idx += 1
            raw = data[idx:idx + count]; idx += count
            if len(raw) != count:
                raise MalformedResponse("Multiplication ratio list truncated")
            clocks.append([MultiplicationRatio.from_byte(b) for b in raw])
        if idx != len(data):
            raise MalformedResponse("Trailing bytes after multiplication ratio list")
        return clocks

    def operating_frequencies(self) -> List[FrequencyRange]:
        """
        Query operating frequency range per clock line.

        Format:
        - clock count: uint8
        - For each clock line: minimum uint16, maximum uint16
        """
        data = self._simple(Command.OPERATING_FREQUENCY_INQUIRY).payload
        if not data or len(data) != 1 + data[0] * 4:
            raise MalformedResponse(f"Malformed operating frequency list ({len(data)} bytes)")
        return [
            FrequencyRange(*struct.unpack('>HH', data[1 + i * 4:5 + i * 4]))
            for i in range(data[0])
        ]

    def user_boot_area(self) -> List[AddressRange]:
        return parse_address_ranges(self._simple(Command.USER_BOOT_AREA_INFORMATION_INQUIRY).payload)

    def user_area(self) -> List[AddressRange]:
        return parse_address_ranges(self._simple(Command.USER_AREA_INFORMATION_INQUIRY).payload)

    def data_area_available(self) -> bool:
        data = self._simple(Command.DATA_AREA_INQUIRY).payload
        if len(data) != 1 or data[0] not in (DATA_AREA_AVAILABLE, DATA_AREA_UNAVAILABLE):
            raise MalformedResponse(f"Malformed data area inquiry response: {data.hex()}")
        return data[0] == DATA_AREA_AVAILABLE

    def data_area(self) -> List[AddressRange]:
        return parse_address_ranges(self._simple(Command.DATA_AREA_INFORMATION_INQUIRY).payload)

    def erasure_blocks(self) -> List[AddressRange]:
        """Query erasure blocks; block numbers are list indices."""
        frame = self.session.exchange(
            encode(Command.ERASURE_BLOCK_INFORMATION_INQUIRY),
            ResponseFormat.sized(Response.ERASURE_BLOCK_INFORMATION, size_width=2)
        )
        return parse_address_ranges(frame.payload)

    def programming_size(self) -> int:
        data = self._simple(Command.PROGRAMMING_SIZE_INQUIRY).payload
        if len(data) != 2:
            raise MalformedResponse(f"Programming size must be 2 bytes, got {len(data)}")
        return struct.unpack('>H', data)[0]

    def select_bit_rate(self, bit_rate: int, input_frequency: int,
                        ratios: Sequence[MultiplicationRatio]) -> None:
        """Request a new bit rate; the caller then switches and confirms."""
        self.session.exchange(
            FrameBuilder.build_new_bit_rate_selection(
                bit_rate, input_frequency, [ratio.to_byte() for ratio in ratios]
            ),
            _ack(Command.NEW_BIT_RATE_SELECTION)
        )

    def confirm_bit_rate(self) -> None:
        """Confirm the new bit rate (sent at the new rate)."""
        self.session.exchange(encode(Command.NEW_BIT_RATE_CONFIRMATION), ACK_ONLY)

    def enter_programming_state(self) -> bool:
        """
        Transition to the programming/erasure state.

        Returns:
            True if ID code protection is enabled (the target will not
            accept programming until it is unlocked)
        """
        fmt = ResponseFormat.single(
            Response.ID_CODE_PROTECTION_DISABLED,
            Response.ID_CODE_PROTECTION_ENABLED,
            error=Command.PROGRAMMING_ERASURE_STATE_TRANSITION.error,
        )
        frame = self.session.exchange(encode(Command.PROGRAMMING_ERASURE_STATE_TRANSITION), fmt)
        return frame.cmd == Response.ID_CODE_PROTECTION_ENABLED

    def boot_status(self) -> BootStatusReport:
        return BootStatusReport.from_bytes(self._simple(Command.BOOT_PROGRAM_STATUS_INQUIRY).payload)

    # === Programming/erasure ===

    def select_user_boot_area_programming(self) -> None:
        self.session.exchange(encode(Command.USER_BOOT_AREA_PROGRAMMING_SELECTION), ACK_ONLY)

    def select_user_area_programming(self) -> None:
        self.session.exchange(encode(Command.USER_AREA_PROGRAMMING_SELECTION), ACK_ONLY)

    def program_block(self, address: int, data: bytes) -> None:
        """Program one 256-byte block."""
        self.session.exchange(FrameBuilder.build_program(address, data), _ack(Command.PROGRAM))

    def end_programming(self) -> None:
        self.session.exchange(FrameBuilder.build_end_programming(), _ack(Command.PROGRAM))

    def select_erasure(self) -> None:
        self.session.exchange(encode(Command.ERASURE_SELECTION), ACK_ONLY)

    def erase_block(self, block: int) -> None:
        self.session.exchange(
            FrameBuilder.build_block_erasure(block),
            _ack(Command.BLOCK_ERASURE),
            self.erase_timeout
        )

    def end_erasure(self) -> None:
        self.session.exchange(FrameBuilder.build_end_erasure(), _ack(Command.BLOCK_ERASURE))

    def read_memory(self, area: MemoryArea, address: int, size: int) -> bytes:
        frame = self.session.exchange(
            FrameBuilder.build_memory_read(area, address, size),
            ResponseFormat.sized(Response.MEMORY_READ, size_width=4, error=Command.MEMORY_READ.error)
        )
        if len(frame.payload) != size:
            raise MalformedResponse(f"Requested {size} bytes, received {len(frame.payload)}")
        return frame.payload

    def _area_checksum(self, command: Command) -> int:
        data = self._simple(command).payload
        if len(data) != 4:
            raise MalformedResponse(f"Checksum must be 4 bytes, got {len(data)}")
        return struct.unpack('>I', data)[0]

    def user_boot_area_checksum(self) -> int:
        return self._area_checksum(Command.USER_BOOT_AREA_CHECKSUM)

    def user_area_checksum(self) -> int:
        return self._area_checksum(Command.USER_AREA_CHECKSUM)

    def _blank_check(self, command: Command) -> bool:
        try:
            self.session.exchange(encode(command), _ack(command), self.erase_timeout)
        except CommandRejected as e:
            if e.error_code == ErrorCode.INCOMPLETE_ERASURE:
                return False
            raise
        return True

    def user_boot_area_blank(self) -> bool:
        """True if the user boot area is blank."""
        return self._blank_check(Command.USER_BOOT_AREA_BLANK_CHECK)

    def user_area_blank(self) -> bool:
        """True if the user area is blank."""
        return self._blank_check(Command.USER_AREA_BLANK_CHECK)

    # === Lock bits ===

    def lock_bit_status(self, area: MemoryArea, address: int) -> LockBitStatus:
        """Read the lock bit of the erasure block containing address."""
        fmt = ResponseFormat.single(
            Response.LOCK_BIT_LOCKED,
            Response.LOCK_BIT_UNLOCKED,
            error=Command.READ_LOCK_BIT_STATUS.error,
        )
        frame = self.session.exchange(
            FrameBuilder.build_lock_bit(Command.READ_LOCK_BIT_STATUS, area, address), fmt
        )
        return LockBitStatus(frame.cmd)

    def program_lock_bit(self, area: MemoryArea, address: int) -> None:
        """Lock the erasure block containing address."""
        self.session.exchange(
            FrameBuilder.build_lock_bit(Command.LOCK_BIT_PROGRAM, area, address),
            _ack(Command.LOCK_BIT_PROGRAM)
        )

    def enable_lock_bits(self) -> None:
        self.session.exchange(encode(Command.LOCK_BIT_ENABLE), ACK_ONLY)

    def disable_lock_bits(self) -> None:
        self.session.exchange(encode(Command.LOCK_BIT_DISABLE), ACK_ONLY)


_SIZED_RESPONSES = {
    Command.SUPPORTED_DEVICE_INQUIRY: Response.SUPPORTED_DEVICES,
    Command.CLOCK_MODE_INQUIRY: Response.CLOCK_MODES,
    Command.MULTIPLICATION_RATIO_INQUIRY: Response.MULTIPLICATION_RATIOS,
    Command.OPERATING_FREQUENCY_INQUIRY: Response.OPERATING_FREQUENCIES,
    Command.USER_BOOT_AREA_INFORMATION_INQUIRY: Response.USER_BOOT_AREA_INFORMATION,
    Command.USER_AREA_INFORMATION_INQUIRY: Response.USER_AREA_INFORMATION,
    Command.PROGRAMMING_SIZE_INQUIRY: Response.PROGRAMMING_SIZE,
    Command.DATA_AREA_INQUIRY: Response.DATA_AREA,
    Command.DATA_AREA_INFORMATION_INQUIRY: Response.DATA_AREA_INFORMATION,
    Command.USER_BOOT_AREA_CHECKSUM: Response.USER_BOOT_AREA_CHECKSUM,
    Command.USER_AREA_CHECKSUM: Response.USER_AREA_CHECKSUM,
    Command.BOOT_PROGRAM_STATUS_INQUIRY: Response.BOOT_PROGRAM_STATUS,
}
