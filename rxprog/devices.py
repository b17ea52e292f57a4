"""
Device family dialects.

The Boot Mode command set is shared, but families differ in how many clock
lines take a multiplication ratio, whether flash is erased block by block,
and how a programmed image is verified.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from .constants import PROGRAMMING_SIZE
from .exceptions import UnsupportedConfiguration


class EraseMethod(Enum):
    """How the user area is erased before programming."""
    BLOCK = "block"              # erasure selection, then one command per block
    BLANK_CHECK = "blank-check"  # target erases on state transition; confirm blank


class VerifyMethod(Enum):
    """How programmed data is verified."""
    READ_BACK = "read-back"
    CHECKSUM = "checksum"


@dataclass(frozen=True)
class DeviceFamily:
    """Capability set of one device family."""
    name: str
    clock_lines: int = 2
    erase_method: EraseMethod = EraseMethod.BLOCK
    verify_method: VerifyMethod = VerifyMethod.READ_BACK
    programming_size: int = PROGRAMMING_SIZE

    def __repr__(self) -> str:
        return (f"DeviceFamily({self.name}, clocks={self.clock_lines}, "
                f"erase={self.erase_method.value}, verify={self.verify_method.value})")


FAMILIES: Dict[str, DeviceFamily] = {
    "rx200": DeviceFamily("rx200"),
    "rx600": DeviceFamily("rx600", verify_method=VerifyMethod.CHECKSUM),
    "h8sx": DeviceFamily(
        "h8sx",
        erase_method=EraseMethod.BLANK_CHECK,
        verify_method=VerifyMethod.CHECKSUM,
    ),
}

DEFAULT_FAMILY = "rx200"


def resolve_family(name: str) -> DeviceFamily:
    """
    Look up a device family by name.

    Raises:
        UnsupportedConfiguration: If the family is unknown
    """
    try:
        return FAMILIES[name.lower()]
    except KeyError:
        known = ", ".join(sorted(FAMILIES))
        raise UnsupportedConfiguration(f"Unknown device family {name!r} (known: {known})") from None
