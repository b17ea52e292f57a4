"""
Connection parameters and link configuration.

Connection string format: semicolon separated key=value pairs, e.g.

    p=/dev/ttyUSB0;d=7805;cm=0;if=1200;mr=x4,x2;br=115200

Keys: p (port), d (device code), cm (clock mode), if (input frequency in
units of 10 kHz), mr (comma separated multiplication ratios), br (bit rate).
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import PROBE_BAUD_RATES
from .data import FrequencyRange, MultiplicationRatio
from .devices import DEFAULT_FAMILY, DeviceFamily
from .exceptions import (
    ConfigurationError,
    IncompleteConfiguration,
    UnsupportedConfiguration,
)

logger = logging.getLogger(__name__)

KEYS = ("p", "d", "cm", "if", "mr", "br")


@dataclass(frozen=True)
class ConnectionParameters:
    """Target connection parameters, possibly partially filled."""
    port: Optional[str] = None
    device: Optional[str] = None
    clock_mode: Optional[int] = None
    input_frequency: Optional[int] = None
    multiplication_ratios: Optional[Tuple[MultiplicationRatio, ...]] = None
    bit_rate: Optional[int] = None
    family: str = DEFAULT_FAMILY

    def __post_init__(self):
        if self.multiplication_ratios is not None:
            object.__setattr__(self, "multiplication_ratios", tuple(self.multiplication_ratios))

    @property
    def missing(self) -> List[str]:
        """Names of the unset fields needed for programming."""
        names = []
        for name in ("port", "device", "clock_mode", "input_frequency",
                     "multiplication_ratios", "bit_rate"):
            if getattr(self, name) is None:
                names.append(name)
        return names

    @property
    def is_complete(self) -> bool:
        return not self.missing

    def with_changes(self, **changes) -> 'ConnectionParameters':
        return replace(self, **changes)

    def require(self, *names: str) -> None:
        """Raise IncompleteConfiguration if any of names is unset."""
        missing = [name for name in names if getattr(self, name) is None]
        if missing:
            raise IncompleteConfiguration(missing)

    def validate(self, family: DeviceFamily,
                 frequency_ranges: Optional[Mapping[int, FrequencyRange]] = None) -> None:
        """
        Check cross-field consistency before anything is sent.

        Args:
            family: Device family the parameters are used with
            frequency_ranges: Operating frequency range per clock line, if queried

        Raises:
            IncompleteConfiguration: If a field is missing
            UnsupportedConfiguration: If ratio count, bit rate or a derived
                operating frequency is not acceptable
        """
        if self.missing:
            raise IncompleteConfiguration(self.missing)

        if len(self.multiplication_ratios) != family.clock_lines:
            raise UnsupportedConfiguration(
                f"{len(self.multiplication_ratios)} multiplication ratios given, "
                f"{family.name} has {family.clock_lines} clock lines"
            )

        if self.bit_rate <= 0 or self.bit_rate % 100 != 0:
            raise UnsupportedConfiguration(f"Bit rate must be a multiple of 100: {self.bit_rate}")
        if self.bit_rate // 100 > 0xFFFF:
            raise UnsupportedConfiguration(f"Bit rate too high: {self.bit_rate}")
        if not 0 < self.input_frequency <= 0xFFFF:
            raise UnsupportedConfiguration(f"Input frequency out of range: {self.input_frequency}")

        if frequency_ranges:
            for clock, ratio in enumerate(self.multiplication_ratios):
                allowed = frequency_ranges.get(clock)
                if allowed is None:
                    continue
                frequency = ratio.apply(self.input_frequency)
                if frequency not in allowed:
                    raise UnsupportedConfiguration(
                        f"Clock {clock}: {self.input_frequency} {ratio} = {frequency:g} "
                        f"outside operating range {allowed}"
                    )

    def to_connection_string(self) -> str:
        values = {
            "p": self.port,
            "d": self.device,
            "cm": self.clock_mode,
            "if": self.input_frequency,
            "mr": (",".join(str(r) for r in self.multiplication_ratios)
                   if self.multiplication_ratios is not None else None),
            "br": self.bit_rate,
        }
        return ";".join(f"{key}={value}" for key, value in values.items() if value is not None)


def split_connection_string(text: str) -> Dict[str, str]:
    """
    Split a connection string into raw key/value pairs.

    Empty pairs (e.g. a trailing ';') are ignored.

    Raises:
        ConfigurationError: On a pair without '=', with more than one '=',
            with an empty key, or on a repeated key
    """
    pairs: Dict[str, str] = {}
    for pair in text.split(";"):
        if not pair.strip():
            continue
        parts = pair.split("=")
        if len(parts) == 1:
            raise ConfigurationError(f"Missing '=' in {pair!r}")
        if len(parts) > 2:
            raise ConfigurationError(f"More than one '=' in {pair!r}")
        key, value = parts[0].strip(), parts[1].strip()
        if not key:
            raise ConfigurationError(f"Empty key in {pair!r}")
        if key in pairs:
            raise ConfigurationError(f"Duplicate key {key!r}")
        pairs[key] = value
    return pairs


def _parse_int(key: str, value: str, name: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid {name}: {key}={value}") from None


def parse_connection_string(text: str, family: str = DEFAULT_FAMILY) -> ConnectionParameters:
    """
    Parse a connection string into ConnectionParameters.

    Args:
        text: Connection string (may be empty)
        family: Device family name to attach

    Returns:
        ConnectionParameters with the fields present in text

    Raises:
        ConfigurationError: If the string or a value is invalid
    """
    pairs = split_connection_string(text)

    unknown = [key for key in pairs if key not in KEYS]
    if unknown:
        raise ConfigurationError(f"Unknown key(s): {', '.join(unknown)}")

    fields: Dict[str, Any] = {"family": family}
    if "p" in pairs:
        fields["port"] = pairs["p"]
    if "d" in pairs:
        fields["device"] = pairs["d"]
    if "cm" in pairs:
        fields["clock_mode"] = _parse_int("cm", pairs["cm"], "clock mode")
        if not 0 <= fields["clock_mode"] <= 0xFF:
            raise ConfigurationError(f"Invalid clock mode: cm={pairs['cm']}")
    if "if" in pairs:
        fields["input_frequency"] = _parse_int("if", pairs["if"], "input frequency")
    if "mr" in pairs:
        fields["multiplication_ratios"] = tuple(
            MultiplicationRatio.parse(ratio) for ratio in pairs["mr"].split(",")
        )
    if "br" in pairs:
        bit_rate = _parse_int("br", pairs["br"], "bit rate")
        if bit_rate <= 0 or bit_rate % 100 != 0:
            raise ConfigurationError("Bit rate must be a multiple of 100")
        fields["bit_rate"] = bit_rate

    params = ConnectionParameters(**fields)
    logger.debug(f"Parsed connection string: {params}")
    return params


@dataclass
class LinkConfig:
    """Link timing and retry tolerances."""
    probe_attempts: int = 30
    probe_interval: float = 0.01
    baud_rates: Tuple[int, ...] = field(default=PROBE_BAUD_RATES)
    response_timeout: float = 1.0
    erase_timeout: float = 10.0
    settle_delay: float = 0.01
    auto_reset: bool = False

    def __post_init__(self):
        self.baud_rates = tuple(self.baud_rates)
        if self.probe_attempts < 1:
            raise ConfigurationError(f"probe_attempts must be at least 1: {self.probe_attempts}")
        if not self.baud_rates:
            raise ConfigurationError("baud_rates must not be empty")

    @classmethod
    def from_dict(cls, config: Optional[Mapping[str, Any]] = None) -> 'LinkConfig':
        """
        Build from a configuration dictionary; missing keys keep defaults.

        Args:
            config: Dictionary with any of probe_attempts, probe_interval,
                baud_rates, response_timeout, erase_timeout, settle_delay,
                auto_reset
        """
        config = config or {}
        defaults = cls()
        unknown = set(config) - set(defaults.__dict__)
        if unknown:
            raise ConfigurationError(f"Unknown link configuration key(s): {', '.join(sorted(unknown))}")
        return cls(
            probe_attempts=int(config.get("probe_attempts", defaults.probe_attempts)),
            probe_interval=float(config.get("probe_interval", defaults.probe_interval)),
            baud_rates=tuple(config.get("baud_rates", defaults.baud_rates)),
            response_timeout=float(config.get("response_timeout", defaults.response_timeout)),
            erase_timeout=float(config.get("erase_timeout", defaults.erase_timeout)),
            settle_delay=float(config.get("settle_delay", defaults.settle_delay)),
            auto_reset=bool(config.get("auto_reset", defaults.auto_reset)),
        )
