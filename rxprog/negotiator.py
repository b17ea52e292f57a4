"""
Connection negotiator.

Drives the initial handshake with a target in Boot Mode:

    IDLE -> AWAITING_MANUAL_RESET -> CONNECTING -> CONNECTED
         -> DEVICE_SELECTED -> NEGOTIATED -> BIT_RATE_SELECTED -> PROGRAMMING

The manual reset step is skipped when the adapter resets the target itself
(LinkConfig.auto_reset). Probing is the only exchange that is retried.
"""

import logging
import time
from enum import Enum
from typing import Callable, Mapping, Optional

from .client import BootModeClient
from .constants import PROBE_BYTE, ErrorCode
from .data import FrequencyRange
from .devices import resolve_family
from .exceptions import (
    BootModeError,
    CommandRejected,
    ConfigurationError,
    NegotiationTimeout,
    SequencingError,
    UnsupportedConfiguration,
)
from .params import ConnectionParameters, LinkConfig
from .session import Session

logger = logging.getLogger(__name__)

RESET_PROMPT = "Reset the target into Boot Mode, then continue"


class LinkState(Enum):
    """Negotiator states."""
    IDLE = 0
    AWAITING_MANUAL_RESET = 1
    CONNECTING = 2
    CONNECTED = 3
    DEVICE_SELECTED = 4
    NEGOTIATED = 5
    BIT_RATE_SELECTED = 6
    PROGRAMMING = 7


# Codes that mean the request itself cannot be honoured
_CONFIGURATION_ERRORS = (
    ErrorCode.DEVICE_CODE,
    ErrorCode.CLOCK_MODE,
    ErrorCode.BIT_RATE_SELECTION,
    ErrorCode.INPUT_FREQUENCY,
    ErrorCode.MULTIPLICATION_RATIO,
    ErrorCode.OPERATING_FREQUENCY,
)


class Negotiator:
    """Establishes and negotiates the Boot Mode link."""

    def __init__(
        self,
        session: Session,
        config: Optional[LinkConfig] = None,
        confirm: Optional[Callable[[str], None]] = None
    ):
        """
        Initialize negotiator.

        Args:
            session: Session over an opened channel
            config: Link tolerances (None uses defaults)
            confirm: Blocking operator confirmation, called with a prompt
                before probing unless config.auto_reset is set
        """
        self.session = session
        self.config = config or LinkConfig()
        self.confirm = confirm
        self.client = BootModeClient(session, self.config.erase_timeout)
        self.state = LinkState.IDLE
        self.device: Optional[str] = None
        self.clock_mode: Optional[int] = None
        self.probe_count = 0

    def _require(self, *states: LinkState) -> None:
        if self.state not in states:
            names = ", ".join(s.name for s in states)
            raise SequencingError(f"Invalid link state {self.state.name} (expected {names})")

    def connect(self) -> None:
        """
        Wait for the operator reset (if needed) and match bit rates.

        Raises:
            NegotiationTimeout: If no probe is answered
            NegotiationFailed: If the target reports bit rate matching failed
        """
        self._require(LinkState.IDLE)

        if not self.config.auto_reset:
            if self.confirm is None:
                raise ConfigurationError("Manual reset needs an operator confirmation callback")
            self.state = LinkState.AWAITING_MANUAL_RESET
            self.confirm(RESET_PROMPT)

        self.state = LinkState.CONNECTING
        try:
            self._probe()
            self.client.match_bit_rate()
        except BootModeError:
            self.state = LinkState.IDLE
            raise

        self.state = LinkState.CONNECTED
        logger.info("Connected to target")

    def _probe(self) -> None:
        """Send probe bytes until the target echoes one."""
        self.session.flush()
        self.probe_count = 0

        for baud_rate in self.config.baud_rates:
            self.session.set_baud_rate(baud_rate)
            logger.debug(f"Probing at {baud_rate} bps")

            for _ in range(self.config.probe_attempts):
                self.session.send(bytes([PROBE_BYTE]))
                self.probe_count += 1

                data = self.session.read(1, self.config.probe_interval)
                if not data:
                    continue
                if data[0] == PROBE_BYTE:
                    logger.info(f"Target answered probe at {baud_rate} bps "
                                f"after {self.probe_count} attempts")
                    return
                logger.warning(f"Ignoring noise byte 0x{data[0]:02X} while probing")

        raise NegotiationTimeout(self.config.probe_attempts, self.config.baud_rates)

    def select_device(self, device: str) -> None:
        """
        Select the target device.

        Raises:
            UnsupportedConfiguration: If the target does not support device
        """
        self._require(LinkState.CONNECTED)
        try:
            self.client.select_device(device)
        except CommandRejected as e:
            self._raise_if_configuration(e, f"device {device!r}")
            raise
        except ValueError as e:
            raise UnsupportedConfiguration(str(e)) from e
        self.device = device
        self.state = LinkState.DEVICE_SELECTED

    def select_clock_mode(self, clock_mode: int) -> None:
        """
        Select the clock mode.

        Raises:
            UnsupportedConfiguration: If the target rejects clock_mode
        """
        self._require(LinkState.DEVICE_SELECTED)
        try:
            self.client.select_clock_mode(clock_mode)
        except CommandRejected as e:
            self._raise_if_configuration(e, f"clock mode {clock_mode}")
            raise
        self.clock_mode = clock_mode
        self.state = LinkState.NEGOTIATED

    def negotiate(self, params: ConnectionParameters) -> None:
        """
        Connect, then select device and clock mode from params.

        Raises:
            IncompleteConfiguration: If device or clock mode is missing
        """
        params.require("device", "clock_mode")
        self.connect()
        self.select_device(params.device)
        self.select_clock_mode(params.clock_mode)
        logger.info(f"Negotiated device {params.device}, clock mode {params.clock_mode}")

    def select_bit_rate(
        self,
        params: ConnectionParameters,
        frequency_ranges: Optional[Mapping[int, FrequencyRange]] = None
    ) -> None:
        """
        Switch the link to the bit rate in params.

        Validates params against their device family, sends the new bit
        rate selection, changes the channel's baud rate, then confirms at
        the new rate.

        Args:
            params: Complete connection parameters
            frequency_ranges: Operating frequency ranges, if queried

        Raises:
            IncompleteConfiguration: If a parameter is missing
            UnsupportedConfiguration: If params are inconsistent (nothing is
                sent), or the target rejects the bit rate, input frequency
                or multiplication ratios
        """
        self._require(LinkState.NEGOTIATED)
        params.validate(resolve_family(params.family), frequency_ranges)
        try:
            self.client.select_bit_rate(
                params.bit_rate, params.input_frequency, params.multiplication_ratios
            )
        except CommandRejected as e:
            self._raise_if_configuration(e, "bit rate selection")
            raise

        self.session.set_baud_rate(params.bit_rate)
        if self.config.settle_delay > 0:
            time.sleep(self.config.settle_delay)
        self.client.confirm_bit_rate()

        self.state = LinkState.BIT_RATE_SELECTED
        logger.info(f"Link running at {params.bit_rate} bps")

    def enter_programming_state(self) -> bool:
        """
        Move the target into the programming/erasure state.

        Inquiry commands are no longer answered afterwards.

        Returns:
            True if the target waits for an ID code (protection enabled)

        Raises:
            CommandRejected: If the target declines the transition
        """
        self._require(LinkState.BIT_RATE_SELECTED)
        protected = self.client.enter_programming_state()
        self.state = LinkState.PROGRAMMING
        return protected

    @staticmethod
    def _raise_if_configuration(error: CommandRejected, what: str) -> None:
        if error.error_code in _CONFIGURATION_ERRORS:
            raise UnsupportedConfiguration(f"Target rejected {what}: {error.error_name}") from error

    def __repr__(self) -> str:
        return f"Negotiator({self.state.name}, device={self.device}, clock_mode={self.clock_mode})"
