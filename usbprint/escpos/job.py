"""Print job container."""

from dataclasses import dataclass
from enum import Enum


class JobKind(str, Enum):
    """What a job's bytes carry."""

    TEXT = "text"
    RASTER = "raster"
    CONTROL = "control"


@dataclass(frozen=True)
class PrintJob:
    """Encoded ESC/POS bytes ready to send.

    Jobs are fire-and-forget: they are never queued or retried.
    """

    data: bytes
    kind: JobKind

    def __len__(self) -> int:
        return len(self.data)
