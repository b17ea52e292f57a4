"""
Capability queries.

Read-only inquiries that tell the operator which connection parameters a
target accepts. Each query is valid from a minimum link state onwards and
may be repeated any number of times until the target enters the
programming/erasure state.
"""

import logging
from typing import Dict, List, Optional

from .data import (
    AddressRange,
    BootStatusReport,
    FrequencyRange,
    MultiplicationRatio,
    SupportedDevice,
)
from .exceptions import SequencingError
from .negotiator import LinkState, Negotiator

logger = logging.getLogger(__name__)

_ORDER = list(LinkState)


class CapabilityQuery:
    """Capability inquiries over a negotiated link."""

    def __init__(self, negotiator: Negotiator):
        self.negotiator = negotiator
        self.client = negotiator.client

    def _require_at_least(self, state: LinkState) -> None:
        current = self.negotiator.state
        if current == LinkState.PROGRAMMING:
            raise SequencingError("Inquiries are not answered once programming has started")
        if _ORDER.index(current) < _ORDER.index(state):
            raise SequencingError(
                f"Query needs link state {state.name} or later, link is {current.name}"
            )

    def _require_clock_mode(self, clock_mode: Optional[int]) -> None:
        self._require_at_least(LinkState.NEGOTIATED)
        if clock_mode is not None and clock_mode != self.negotiator.clock_mode:
            raise SequencingError(
                f"Clock mode {clock_mode} is not selected "
                f"(selected: {self.negotiator.clock_mode})"
            )

    def supported_devices(self) -> List[SupportedDevice]:
        self._require_at_least(LinkState.CONNECTED)
        return self.client.supported_devices()

    def clock_modes(self) -> List[int]:
        self._require_at_least(LinkState.DEVICE_SELECTED)
        return self.client.clock_modes()

    def multiplication_ratios(self, clock_mode: Optional[int] = None) -> Dict[int, List[MultiplicationRatio]]:
        """
        Query supported multiplication ratios.

        Args:
            clock_mode: Clock mode the answer is for; must be the selected
                one (None accepts the selected mode)

        Returns:
            Mapping of clock line index to ordered supported ratios

        Raises:
            SequencingError: Before negotiation, or for a clock mode that
                is not selected
            MalformedResponse: If the response payload is malformed
        """
        self._require_clock_mode(clock_mode)
        ratios = dict(enumerate(self.client.multiplication_ratios()))
        for clock, values in ratios.items():
            logger.info(f"Clock {clock}: {', '.join(str(r) for r in values)}")
        return ratios

    def frequency_ranges(self, clock_mode: Optional[int] = None) -> Dict[int, FrequencyRange]:
        """
        Query operating frequency ranges.

        Args:
            clock_mode: Clock mode the answer is for; must be the selected
                one (None accepts the selected mode)

        Returns:
            Mapping of clock line index to its FrequencyRange
        """
        self._require_clock_mode(clock_mode)
        ranges = dict(enumerate(self.client.operating_frequencies()))
        for clock, allowed in ranges.items():
            logger.info(f"Clock {clock}: {allowed.minimum}-{allowed.maximum}")
        return ranges

    def user_boot_area(self) -> List[AddressRange]:
        self._require_at_least(LinkState.CONNECTED)
        return self.client.user_boot_area()

    def user_area(self) -> List[AddressRange]:
        self._require_at_least(LinkState.CONNECTED)
        return self.client.user_area()

    def data_area(self) -> List[AddressRange]:
        """Data flash areas (empty when the target has none)."""
        self._require_at_least(LinkState.CONNECTED)
        if not self.client.data_area_available():
            return []
        return self.client.data_area()

    def erasure_blocks(self) -> List[AddressRange]:
        self._require_at_least(LinkState.CONNECTED)
        return self.client.erasure_blocks()

    def programming_size(self) -> int:
        self._require_at_least(LinkState.CONNECTED)
        return self.client.programming_size()

    def boot_status(self) -> BootStatusReport:
        self._require_at_least(LinkState.CONNECTED)
        return self.client.boot_status()
