"""Value types shared by the sampler and the alert engine."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class ProcessSnapshot:
    """One process as seen by a single sampler read.

    ``cpu_percent`` is not normalized across cores and may exceed 100.
    ``start_time`` is None when the platform does not report it.
    """

    pid: int
    name: str
    cpu_percent: float
    start_time: Optional[datetime] = None
    command_line: str = ""


@dataclass
class AlertRecord:
    """Cooldown bookkeeping for one process id."""

    pid: int
    last_alert: float

    def age(self, now: float) -> float:
        return now - self.last_alert
