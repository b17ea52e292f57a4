"""
Custom exceptions for the Boot Mode programmer.
"""

from typing import Optional

from .constants import Command, ErrorCode


class BootModeError(Exception):
    """Base exception for Boot Mode programmer errors."""
    pass


# === Transport errors ===

class TransportError(BootModeError):
    """Channel open, read or write failure."""
    pass


class ResponseTimeout(TransportError):
    """No complete response within the timeout."""

    def __init__(self, timeout: float, received: int = 0):
        self.timeout = timeout
        self.received = received
        msg = f"No response within {timeout}s"
        if received > 0:
            msg += f" ({received} bytes of a partial frame received)"
        super().__init__(msg)


# === Protocol errors ===

class FrameError(BootModeError):
    """Frame parsing or building error."""
    pass


class ChecksumMismatch(FrameError):
    """Frame checksum verification failed."""

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Checksum mismatch: expected 0x{expected:02X}, received 0x{received:02X}"
        )


class MalformedResponse(FrameError):
    """Response is too short or its payload does not match its format."""
    pass


class UnexpectedResponse(FrameError):
    """Response code not valid for the command in flight."""

    def __init__(self, command: int, code: int):
        self.command = command
        self.code = code
        super().__init__(
            f"Unexpected response 0x{code:02X} to {Command.name_of(command)}"
        )


class CommandRejected(BootModeError):
    """Target answered a command with an error response."""

    def __init__(self, command: int, error_code: int):
        self.command = command
        self.error_code = error_code
        self.error_name = ErrorCode.name_of(error_code)
        super().__init__(
            f"{Command.name_of(command)} rejected: {self.error_name} (0x{error_code:02X})"
        )


# === Configuration errors ===

class ConfigurationError(BootModeError):
    """Invalid connection string or link configuration."""
    pass


class UnsupportedConfiguration(ConfigurationError):
    """Device, clock mode, ratio or frequency not supported."""
    pass


class IncompleteConfiguration(ConfigurationError):
    """A required connection parameter is missing."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Missing connection parameters: {', '.join(self.missing)}")


class ImageError(BootModeError):
    """Firmware image could not be read."""
    pass


# === Negotiation errors ===

class NegotiationError(BootModeError):
    """Initial handshake with the target failed."""
    pass


class NegotiationTimeout(NegotiationError):
    """Target did not answer any bit-rate matching probe."""

    def __init__(self, attempts: int, baud_rates):
        self.attempts = attempts
        self.baud_rates = tuple(baud_rates)
        rates = ", ".join(str(rate) for rate in self.baud_rates)
        super().__init__(
            f"No response to {attempts} probes at each of {rates} bps"
        )


class NegotiationFailed(NegotiationError):
    """Target reported that bit-rate matching failed."""
    pass


# === Programming errors ===

class ProgrammingError(BootModeError):
    """A programming state machine phase failed."""

    def __init__(self, message: str, address: Optional[int] = None):
        self.address = address
        if address is not None:
            message = f"{message} at 0x{address:08X}"
        super().__init__(message)


class ModeTransitionRejected(ProgrammingError):
    """Target declined the programming/erasure state transition."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Programming/erasure state transition rejected: {reason}")


class EraseFailed(ProgrammingError):
    """Erasure of a block or area failed."""

    def __init__(self, address: int, reason: str = ""):
        self.reason = reason
        super().__init__(f"Erase failed{': ' + reason if reason else ''}", address)


class WriteFailed(ProgrammingError):
    """Programming of a chunk failed."""

    def __init__(self, address: int, reason: str = ""):
        self.reason = reason
        super().__init__(f"Write failed{': ' + reason if reason else ''}", address)


class VerificationMismatch(ProgrammingError):
    """Target memory does not match the programmed image."""

    def __init__(self, address: int, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Verification mismatch (expected 0x{expected:X}, read 0x{actual:X})",
            address,
        )


# === Caller errors ===

class SequencingError(BootModeError):
    """Operation invoked outside its valid state."""
    pass


class Cancelled(BootModeError):
    """Operation cancelled before the next exchange."""
    pass
