"""
Boot Mode protocol constants.

Opcodes, response codes and error codes of the Renesas RX/H8SX Boot Mode
serial protocol. All multi-byte values on the wire use big-endian byte order.
"""

from enum import IntEnum

# Bit-rate matching
PROBE_BYTE = 0x00
BIT_RATE_MATCH = 0x55
BIT_RATE_MATCH_OK = 0xE6
BIT_RATE_MATCH_FAILED = 0xFF

# Generic acknowledgement
ACK = 0x06

# Baud rates tried, in order, while matching the target's bit rate
PROBE_BAUD_RATES = (9600, 4800, 2400, 1200)
DEFAULT_BAUD_RATE = 9600

# Programming
PROGRAMMING_SIZE = 256
UNPROGRAMMED_BYTE = 0xFF
END_OF_PROGRAMMING = 0xFFFFFFFF
END_OF_ERASURE = 0xFF

# Largest payload a command frame can carry in its one-byte size field
MAX_COMMAND_PAYLOAD = 0xFF

# Device codes are four ASCII characters
DEVICE_CODE_LENGTH = 4

# Data area availability (0x3A response)
DATA_AREA_AVAILABLE = 0x21
DATA_AREA_UNAVAILABLE = 0x18


class Command(IntEnum):
    """Command opcodes (Host -> Target)."""
    SUPPORTED_DEVICE_INQUIRY = 0x20
    DEVICE_SELECTION = 0x10
    CLOCK_MODE_INQUIRY = 0x21
    CLOCK_MODE_SELECTION = 0x11
    MULTIPLICATION_RATIO_INQUIRY = 0x22
    OPERATING_FREQUENCY_INQUIRY = 0x23
    USER_BOOT_AREA_INFORMATION_INQUIRY = 0x24
    USER_AREA_INFORMATION_INQUIRY = 0x25
    ERASURE_BLOCK_INFORMATION_INQUIRY = 0x26
    PROGRAMMING_SIZE_INQUIRY = 0x27
    DATA_AREA_INQUIRY = 0x2A
    DATA_AREA_INFORMATION_INQUIRY = 0x2B
    NEW_BIT_RATE_SELECTION = 0x3F
    NEW_BIT_RATE_CONFIRMATION = 0x06
    PROGRAMMING_ERASURE_STATE_TRANSITION = 0x40
    USER_BOOT_AREA_PROGRAMMING_SELECTION = 0x42
    USER_AREA_PROGRAMMING_SELECTION = 0x43
    ERASURE_SELECTION = 0x48
    USER_BOOT_AREA_CHECKSUM = 0x4A
    USER_AREA_CHECKSUM = 0x4B
    USER_BOOT_AREA_BLANK_CHECK = 0x4C
    USER_AREA_BLANK_CHECK = 0x4D
    BOOT_PROGRAM_STATUS_INQUIRY = 0x4F
    PROGRAM = 0x50
    MEMORY_READ = 0x52
    BLOCK_ERASURE = 0x58
    READ_LOCK_BIT_STATUS = 0x71
    LOCK_BIT_DISABLE = 0x75
    LOCK_BIT_PROGRAM = 0x77
    LOCK_BIT_ENABLE = 0x7A

    @property
    def error(self) -> int:
        """Error response code the target sends for this command."""
        return self | 0x80

    @classmethod
    def name_of(cls, opcode: int) -> str:
        """Get command name from opcode."""
        try:
            return cls(opcode).name
        except ValueError:
            return f"Unknown(0x{opcode:02X})"


class Response(IntEnum):
    """Response codes (Target -> Host)."""
    ACK = 0x06
    ID_CODE_PROTECTION_ENABLED = 0x16
    ID_CODE_PROTECTION_DISABLED = 0x26
    SUPPORTED_DEVICES = 0x30
    CLOCK_MODES = 0x31
    MULTIPLICATION_RATIOS = 0x32
    OPERATING_FREQUENCIES = 0x33
    USER_BOOT_AREA_INFORMATION = 0x34
    USER_AREA_INFORMATION = 0x35
    ERASURE_BLOCK_INFORMATION = 0x36
    PROGRAMMING_SIZE = 0x37
    DATA_AREA = 0x3A
    DATA_AREA_INFORMATION = 0x3B
    MEMORY_READ = 0x52
    USER_BOOT_AREA_CHECKSUM = 0x5A
    USER_AREA_CHECKSUM = 0x5B
    BOOT_PROGRAM_STATUS = 0x5F
    LOCK_BIT_LOCKED = 0x00
    LOCK_BIT_UNLOCKED = 0x40


class ErrorCode(IntEnum):
    """Error codes carried in the second byte of an error response."""
    NO_ERROR = 0x00
    CHECKSUM = 0x11
    DEVICE_CODE = 0x21
    CLOCK_MODE = 0x22
    BIT_RATE_SELECTION = 0x24
    INPUT_FREQUENCY = 0x25
    MULTIPLICATION_RATIO = 0x26
    OPERATING_FREQUENCY = 0x27
    BLOCK_NUMBER = 0x29
    ADDRESS = 0x2A
    DATA_SIZE = 0x2B
    ERASURE = 0x51
    INCOMPLETE_ERASURE = 0x52
    PROGRAMMING = 0x53
    SELECTION = 0x54
    COMMAND = 0x80
    BIT_RATE_MATCHING = 0xFF

    @classmethod
    def name_of(cls, code: int) -> str:
        """Get error description from code."""
        names = {
            cls.NO_ERROR: "No error",
            cls.CHECKSUM: "Checksum error",
            cls.DEVICE_CODE: "Device code error",
            cls.CLOCK_MODE: "Clock mode error",
            cls.BIT_RATE_SELECTION: "Bit rate selection error",
            cls.INPUT_FREQUENCY: "Input frequency error",
            cls.MULTIPLICATION_RATIO: "Multiplication ratio error",
            cls.OPERATING_FREQUENCY: "Operating frequency error",
            cls.BLOCK_NUMBER: "Block number error",
            cls.ADDRESS: "Address error",
            cls.DATA_SIZE: "Data size error",
            cls.ERASURE: "Erasure error",
            cls.INCOMPLETE_ERASURE: "Incomplete erasure",
            cls.PROGRAMMING: "Programming error",
            cls.SELECTION: "Selection error",
            cls.COMMAND: "Command error",
            cls.BIT_RATE_MATCHING: "Bit rate matching error",
        }
        return names.get(code, f"Unknown(0x{code:02X})")


class BootStatus(IntEnum):
    """Boot program status codes (0x5F response)."""
    WAITING_FOR_DEVICE_SELECTION = 0x11
    WAITING_FOR_CLOCK_MODE_SELECTION = 0x12
    WAITING_FOR_BIT_RATE_SELECTION = 0x13
    WAITING_FOR_STATE_TRANSITION = 0x1F
    ERASING = 0x31
    WAITING_FOR_COMMAND = 0x3F
    WAITING_FOR_PROGRAMMING_DATA = 0x4F
    WAITING_FOR_ERASURE_BLOCK = 0x5F

    @classmethod
    def name_of(cls, status: int) -> str:
        """Get status description from code."""
        names = {
            cls.WAITING_FOR_DEVICE_SELECTION: "Waiting for device selection",
            cls.WAITING_FOR_CLOCK_MODE_SELECTION: "Waiting for clock mode selection",
            cls.WAITING_FOR_BIT_RATE_SELECTION: "Waiting for bit rate selection",
            cls.WAITING_FOR_STATE_TRANSITION: "Waiting for programming/erasure state transition",
            cls.ERASING: "Erasing user area and user boot area",
            cls.WAITING_FOR_COMMAND: "Waiting for programming/erasure command",
            cls.WAITING_FOR_PROGRAMMING_DATA: "Waiting for programming data",
            cls.WAITING_FOR_ERASURE_BLOCK: "Waiting for erasure block specification",
        }
        return names.get(status, f"Unknown(0x{status:02X})")


class MemoryArea(IntEnum):
    """Memory area selector for memory read and lock bit commands."""
    USER_BOOT_AREA = 0x00
    USER_AREA = 0x01


class LockBitStatus(IntEnum):
    """Lock bit state of an erasure block."""
    LOCKED = 0x00
    UNLOCKED = 0x40
