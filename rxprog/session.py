"""
Transport session.

Sends command frames and receives exactly one response frame per command
over a BaseTransport. The session owns its channel for its whole lifetime.
"""

import logging
import threading
import time
from typing import Optional

from .checksum import Checksum
from .exceptions import (
    Cancelled,
    ChecksumMismatch,
    CommandRejected,
    ResponseTimeout,
    UnexpectedResponse,
)
from .frame import Frame, FrameParser, ParseResult, ResponseFormat
from .transport import BaseTransport

logger = logging.getLogger(__name__)


class Session:
    """Half-duplex request/response session over one channel."""

    def __init__(
        self,
        transport: BaseTransport,
        response_timeout: float = 1.0,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Initialize session.

        Args:
            transport: Channel the session takes ownership of
            response_timeout: Default timeout for a complete response in seconds
            cancel_event: Event checked before every send; when set, the
                next send raises Cancelled
        """
        self.transport = transport
        self.response_timeout = response_timeout
        self.cancel_event = cancel_event or threading.Event()

    def check_cancelled(self) -> None:
        """Raise Cancelled if cancellation was requested."""
        if self.cancel_event.is_set():
            raise Cancelled("Operation cancelled")

    def cancel(self) -> None:
        """Request cancellation before the next exchange."""
        self.cancel_event.set()

    def send(self, data: bytes) -> None:
        """
        Write one encoded frame.

        Raises:
            Cancelled: If cancellation was requested
            TransportError: If the write fails
        """
        self.check_cancelled()
        self.transport.write(data)

    def read(self, size: int, timeout: float) -> bytes:
        """Raw read; empty result on timeout."""
        return self.transport.read(size, timeout)

    def receive(self, fmt: ResponseFormat, command: int,
                timeout: Optional[float] = None) -> Frame:
        """
        Receive one response frame.

        Args:
            fmt: Expected response format
            command: Opcode of the command being answered
            timeout: Response timeout (None uses default)

        Returns:
            Received Frame

        Raises:
            ResponseTimeout: If no complete frame arrives within timeout
            ChecksumMismatch: If the frame checksum is wrong
            UnexpectedResponse: If the first byte is not a valid response
            CommandRejected: If the target sent an error response
        """
        timeout = self.response_timeout if timeout is None else timeout
        parser = FrameParser(fmt)
        deadline = time.monotonic() + timeout

        while True:
            result, frame, _ = parser.parse()

            if result == ParseResult.OK:
                logger.debug(f"Received frame: code=0x{frame.cmd:02X}, "
                             f"payload={frame.payload.hex() if frame.payload else 'none'}")
                return frame
            if result == ParseResult.ERROR:
                raise CommandRejected(command, frame.payload[0])
            if result == ParseResult.CHECKSUM_ERROR:
                raise ChecksumMismatch(Checksum.calculate(frame.payload[:-1]), frame.payload[-1])
            if result == ParseResult.FORMAT_ERROR:
                raise UnexpectedResponse(command, frame.cmd)

            remaining = deadline - time.monotonic()
            data = self.transport.read(parser.bytes_needed, remaining) if remaining > 0 else b""
            if not data:
                raise ResponseTimeout(timeout, parser.buffer_size)
            parser.feed(data)

    def exchange(self, data: bytes, fmt: ResponseFormat,
                 timeout: Optional[float] = None) -> Frame:
        """Send one command frame and receive its response."""
        self.send(data)
        return self.receive(fmt, data[0], timeout)

    def set_baud_rate(self, baudrate: int) -> None:
        self.transport.set_baud_rate(baudrate)

    def flush(self) -> None:
        self.transport.flush()

    def close(self) -> None:
        """Release the channel."""
        self.transport.close()

    def __enter__(self) -> 'Session':
        if not self.transport.is_open:
            self.transport.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Session({self.transport!r})"
