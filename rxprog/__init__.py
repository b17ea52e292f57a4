"""
rxprog - Python implementation of the Renesas Boot Mode programming protocol.

This package provides:
- Protocol constants and error codes
- Frame checksum calculation
- Frame parsing and building
- Serial transport layer and request/response session
- Connection negotiation and capability queries
- Erase/program/verify state machine
- Firmware image loading
"""

__version__ = "1.0.0"

from .constants import (
    ACK, PROGRAMMING_SIZE,
    Command, Response, ErrorCode, BootStatus, MemoryArea, LockBitStatus
)
from .checksum import Checksum
from .exceptions import (
    BootModeError, TransportError, ResponseTimeout,
    FrameError, ChecksumMismatch, MalformedResponse, UnexpectedResponse, CommandRejected,
    ConfigurationError, UnsupportedConfiguration, IncompleteConfiguration, ImageError,
    NegotiationError, NegotiationTimeout, NegotiationFailed,
    ProgrammingError, ModeTransitionRejected, EraseFailed, WriteFailed, VerificationMismatch,
    SequencingError, Cancelled,
)
from .frame import Frame, FrameBuilder, FrameParser, ParseResult, ResponseFormat, encode, decode
from .data import (
    MultiplicationRatio, FrequencyRange, AddressRange,
    SupportedDevice, BootStatusReport, ImageRecord
)
from .devices import DeviceFamily, EraseMethod, VerifyMethod, resolve_family
from .params import ConnectionParameters, LinkConfig, parse_connection_string
from .transport import BaseTransport, SerialTransport, list_ports
from .session import Session
from .client import BootModeClient
from .negotiator import LinkState, Negotiator
from .capabilities import CapabilityQuery
from .progress import EventKind, ProgressEvent
from .programmer import PhaseFailure, Programmer, SessionState

__all__ = [
    # Constants
    "ACK", "PROGRAMMING_SIZE",
    "Command", "Response", "ErrorCode", "BootStatus", "MemoryArea", "LockBitStatus",
    # Checksum
    "Checksum",
    # Exceptions
    "BootModeError", "TransportError", "ResponseTimeout",
    "FrameError", "ChecksumMismatch", "MalformedResponse", "UnexpectedResponse",
    "CommandRejected",
    "ConfigurationError", "UnsupportedConfiguration", "IncompleteConfiguration", "ImageError",
    "NegotiationError", "NegotiationTimeout", "NegotiationFailed",
    "ProgrammingError", "ModeTransitionRejected", "EraseFailed", "WriteFailed",
    "VerificationMismatch", "SequencingError", "Cancelled",
    # Frame
    "Frame", "FrameBuilder", "FrameParser", "ParseResult", "ResponseFormat", "encode", "decode",
    # Data
    "MultiplicationRatio", "FrequencyRange", "AddressRange",
    "SupportedDevice", "BootStatusReport", "ImageRecord",
    # Devices and parameters
    "DeviceFamily", "EraseMethod", "VerifyMethod", "resolve_family",
    "ConnectionParameters", "LinkConfig", "parse_connection_string",
    # Transport
    "BaseTransport", "SerialTransport", "list_ports", "Session",
    # Protocol engine
    "BootModeClient", "LinkState", "Negotiator", "CapabilityQuery",
    "EventKind", "ProgressEvent", "PhaseFailure", "Programmer", "SessionState",
]
