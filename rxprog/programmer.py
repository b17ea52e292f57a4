"""
Programming state machine.

Sequences erase, program and verify over a negotiated link:

    IDLE -> READY -> ERASING -> PROGRAMMING -> VERIFYING -> COMPLETE

Any error raised inside a phase moves the machine to the terminal FAILED
state with the phase and its error recorded in `failure`. Cancellation is
checked before a phase is entered, so a cancelled machine stays in the last
phase the target confirmed, with no failure recorded. Nothing is retried.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Mapping, Optional, Tuple

from .checksum import Checksum
from .constants import UNPROGRAMMED_BYTE, MemoryArea
from .data import AddressRange, FrequencyRange, ImageRecord
from .devices import EraseMethod, VerifyMethod, resolve_family
from .exceptions import (
    BootModeError,
    Cancelled,
    CommandRejected,
    EraseFailed,
    ImageError,
    MalformedResponse,
    ModeTransitionRejected,
    SequencingError,
    UnsupportedConfiguration,
    VerificationMismatch,
    WriteFailed,
)
from .negotiator import LinkState, Negotiator
from .params import ConnectionParameters
from .progress import EventKind, ProgressEvent, ProgressObserver

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Programming state machine states."""
    IDLE = 0
    READY = 1
    ERASING = 2
    PROGRAMMING = 3
    VERIFYING = 4
    COMPLETE = 5
    FAILED = 6


@dataclass(frozen=True)
class PhaseFailure:
    """Phase in which the machine failed, and why."""
    phase: SessionState
    error: BootModeError

    def __str__(self) -> str:
        return f"{self.phase.name}: {self.error}"


def paginate(records: Iterable[ImageRecord], size: int) -> Iterator[Tuple[int, bytes]]:
    """
    Merge image records into size-aligned pages.

    Gaps are padded with 0xFF. Pages left entirely unprogrammed are skipped.

    Args:
        records: Ascending, non-overlapping records (iterated once)
        size: Page size

    Yields:
        (address, data) tuples with len(data) == size
    """
    page_address: Optional[int] = None
    page = bytearray()

    for record in records:
        offset = 0
        while offset < len(record.data):
            address = record.address + offset
            base = address - address % size

            if base != page_address:
                if page_address is not None and base < page_address:
                    raise ImageError(f"Image records not in ascending order at 0x{address:08X}")
                if page_address is not None and page.count(UNPROGRAMMED_BYTE) != size:
                    yield (page_address, bytes(page))
                page_address = base
                page = bytearray([UNPROGRAMMED_BYTE]) * size

            start = address - base
            count = min(size - start, len(record.data) - offset)
            page[start:start + count] = record.data[offset:offset + count]
            offset += count

    if page_address is not None and page.count(UNPROGRAMMED_BYTE) != size:
        yield (page_address, bytes(page))


class Programmer:
    """Erase/program/verify state machine for one target."""

    def __init__(
        self,
        negotiator: Negotiator,
        params: ConnectionParameters,
        observer: Optional[ProgressObserver] = None,
        frequency_ranges: Optional[Mapping[int, FrequencyRange]] = None
    ):
        """
        Initialize programmer.

        Args:
            negotiator: Negotiator in the NEGOTIATED state
            params: Complete connection parameters, frozen for the session
            observer: Called with every ProgressEvent
            frequency_ranges: Operating frequency ranges, if queried, used
                to validate params before anything is sent
        """
        self.negotiator = negotiator
        self.client = negotiator.client
        self._params = params
        self.family = resolve_family(params.family)
        self.observer = observer
        self.frequency_ranges = frequency_ranges
        self.state = SessionState.IDLE
        self.failure: Optional[PhaseFailure] = None

        self.user_areas: List[AddressRange] = []
        self.erasure_blocks: List[AddressRange] = []
        self._written: List[Tuple[int, bytes]] = []
        self._phase_done = False

    @property
    def params(self) -> ConnectionParameters:
        return self._params

    # === State handling ===

    def _require(self, state: SessionState, done: bool = True) -> None:
        if self.state != state:
            raise SequencingError(f"Invalid state {self.state.name} (expected {state.name})")
        if done and not self._phase_done:
            raise SequencingError(f"{state.name} has not completed")

    def _begin(self, state: SessionState) -> None:
        self.negotiator.session.check_cancelled()
        self._transition(state)

    def _transition(self, state: SessionState) -> None:
        logger.debug(f"{self.state.name} -> {state.name}")
        self.state = state
        self._phase_done = False
        self._notify(ProgressEvent(EventKind.PHASE, state.name))

    def _chunk(self, address: int, size: int, done: int, total: int) -> None:
        self._notify(ProgressEvent(EventKind.CHUNK, self.state.name, address, size, done, total))

    def _notify(self, event: ProgressEvent) -> None:
        if self.observer:
            self.observer(event)

    @contextmanager
    def _guard(self, phase: SessionState):
        try:
            yield
        except Cancelled:
            raise
        except BootModeError as e:
            self.failure = PhaseFailure(phase, e)
            self._transition(SessionState.FAILED)
            raise

    # === Phases ===

    def enter_ready(self) -> None:
        """
        Select the bit rate, read the memory map and enter the
        programming/erasure state.

        Raises:
            SequencingError: If the link is not negotiated
            IncompleteConfiguration: If params are not fully specified
            UnsupportedConfiguration: If params are inconsistent (checked
                before any frame is sent)
            ModeTransitionRejected: If the target declines the transition
        """
        if self.state != SessionState.IDLE:
            raise SequencingError(f"Invalid state {self.state.name} (expected IDLE)")
        if self.negotiator.state != LinkState.NEGOTIATED:
            raise SequencingError(f"Link not negotiated (link state {self.negotiator.state.name})")
        self.params.validate(self.family, self.frequency_ranges)

        with self._guard(SessionState.READY):
            self.negotiator.select_bit_rate(self.params, self.frequency_ranges)

            self.user_areas = self.client.user_area()
            if not self.user_areas:
                raise MalformedResponse("Target reported no user area")
            self.erasure_blocks = self.client.erasure_blocks()

            size = self.client.programming_size()
            if size != self.family.programming_size:
                raise UnsupportedConfiguration(
                    f"Target programming size {size} bytes, "
                    f"{self.family.name} uses {self.family.programming_size}"
                )

            try:
                protected = self.negotiator.enter_programming_state()
            except CommandRejected as e:
                raise ModeTransitionRejected(e.error_name) from e
            if protected:
                raise ModeTransitionRejected("ID code protection enabled")

        self._transition(SessionState.READY)
        self._phase_done = True
        logger.info(f"Ready: user area {', '.join(repr(a) for a in self.user_areas)}")

    def erase(self) -> None:
        """
        Erase the user area.

        Raises:
            EraseFailed: If the target rejects a block or the area is not blank
        """
        self._require(SessionState.READY)
        self._begin(SessionState.ERASING)

        with self._guard(SessionState.ERASING):
            if self.family.erase_method == EraseMethod.BLOCK:
                self._erase_blocks()
            else:
                self._check_blank()

        self._phase_done = True
        logger.info("Erase complete")

    def _erase_blocks(self) -> None:
        blocks = [
            (number, block) for number, block in enumerate(self.erasure_blocks)
            if any(area.contains_range(block) for area in self.user_areas)
        ]

        self.client.select_erasure()
        for done, (number, block) in enumerate(blocks, 1):
            try:
                self.client.erase_block(number)
            except CommandRejected as e:
                raise EraseFailed(block.start, e.error_name) from e
            self._chunk(block.start, block.size, done, len(blocks))

        last = blocks[-1][1].start if blocks else self.user_areas[0].start
        try:
            self.client.end_erasure()
        except CommandRejected as e:
            raise EraseFailed(last, e.error_name) from e

    def _check_blank(self) -> None:
        start = self.user_areas[0].start
        if not self.client.user_area_blank():
            raise EraseFailed(start, "user area not blank")
        self._chunk(start, sum(area.size for area in self.user_areas), 1, 1)

    def program(self, records: Iterable[ImageRecord]) -> None:
        """
        Program image records into the user area.

        Args:
            records: Ascending, non-overlapping records, iterated once

        Raises:
            WriteFailed: If the target rejects a chunk, or a chunk falls
                outside the user area
        """
        self._require(SessionState.ERASING)
        self._begin(SessionState.PROGRAMMING)

        with self._guard(SessionState.PROGRAMMING):
            size = self.family.programming_size
            chunks = list(paginate(records, size))
            for address, _ in chunks:
                chunk = AddressRange(address, address + size - 1)
                if not any(area.contains_range(chunk) for area in self.user_areas):
                    raise WriteFailed(address, "outside user area")

            self.client.select_user_area_programming()
            for done, (address, data) in enumerate(chunks, 1):
                try:
                    self.client.program_block(address, data)
                except CommandRejected as e:
                    raise WriteFailed(address, e.error_name) from e
                self._written.append((address, data))
                self._chunk(address, len(data), done, len(chunks))

            last = chunks[-1][0] if chunks else self.user_areas[0].start
            try:
                self.client.end_programming()
            except CommandRejected as e:
                raise WriteFailed(last, e.error_name) from e

        self._phase_done = True
        logger.info(f"Programmed {len(self._written)} blocks")

    def verify(self) -> None:
        """
        Verify programmed data.

        Raises:
            VerificationMismatch: If target memory differs from the image
        """
        self._require(SessionState.PROGRAMMING)
        self._begin(SessionState.VERIFYING)

        with self._guard(SessionState.VERIFYING):
            if self.family.verify_method == VerifyMethod.READ_BACK:
                self._verify_read_back()
            else:
                self._verify_checksum()

        self._transition(SessionState.COMPLETE)
        logger.info("Verification complete")

    def _verify_read_back(self) -> None:
        for done, (address, data) in enumerate(self._written, 1):
            actual = self.client.read_memory(MemoryArea.USER_AREA, address, len(data))
            if actual != data:
                offset = next(i for i, (a, b) in enumerate(zip(data, actual)) if a != b)
                raise VerificationMismatch(address + offset, data[offset], actual[offset])
            self._chunk(address, len(data), done, len(self._written))

    def _verify_checksum(self) -> None:
        expected = self.image_checksum()
        actual = self.client.user_area_checksum()
        start = self.user_areas[0].start
        if actual != expected:
            raise VerificationMismatch(start, expected, actual)
        self._chunk(start, sum(area.size for area in self.user_areas), 1, 1)

    def image_checksum(self) -> int:
        """32-bit sum of the user area as it should read after programming."""
        total = sum(area.size for area in self.user_areas) * UNPROGRAMMED_BYTE
        for _, data in self._written:
            total = Checksum.sum32(data, total - UNPROGRAMMED_BYTE * len(data))
        return total & 0xFFFFFFFF

    def run(self, records: Iterable[ImageRecord]) -> SessionState:
        """Run every phase in order; returns COMPLETE or raises."""
        self.enter_ready()
        self.erase()
        self.program(records)
        self.verify()
        return self.state

    def __repr__(self) -> str:
        return f"Programmer({self.state.name}, family={self.family.name})"
