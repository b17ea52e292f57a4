"""
Progress events emitted by the programming state machine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class EventKind(Enum):
    PHASE = "phase"
    CHUNK = "chunk"


@dataclass(frozen=True)
class ProgressEvent:
    """
    One progress notification.

    Attributes:
        kind: PHASE when a state is entered, CHUNK when a unit of work completes
        phase: Name of the state entered or the state the chunk belongs to
        address: Start address of the chunk (None for PHASE events)
        size: Bytes covered by the chunk
        done: Chunks completed in this phase so far
        total: Chunks in this phase
    """
    kind: EventKind
    phase: str
    address: Optional[int] = None
    size: int = 0
    done: int = 0
    total: int = 0

    def __repr__(self) -> str:
        if self.kind == EventKind.PHASE:
            return f"ProgressEvent({self.phase})"
        return (f"ProgressEvent({self.phase} 0x{self.address:08X}, "
                f"{self.size} bytes, {self.done}/{self.total})")


ProgressObserver = Callable[[ProgressEvent], None]
