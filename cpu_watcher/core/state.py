"""In-memory cooldown bookkeeping."""

from typing import Iterator, Optional

import structlog

from cpu_watcher.models import AlertRecord

logger = structlog.get_logger()


class AlertTable:
    """Last successful alert time per process id.

    The table lives only in memory and is owned by a single engine; a
    restart forgets every cooldown. Process ids recycled by the OS inherit
    the previous owner's cooldown.
    """

    def __init__(self, cooldown_seconds: float, gc_factor: int = 5):
        self.cooldown_seconds = cooldown_seconds
        self.gc_factor = gc_factor
        self._records: dict[int, AlertRecord] = {}
        self.logger = logger.bind(component="AlertTable")

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, pid: int) -> bool:
        return pid in self._records

    def __iter__(self) -> Iterator[AlertRecord]:
        return iter(list(self._records.values()))

    def get(self, pid: int) -> Optional[AlertRecord]:
        return self._records.get(pid)

    def is_suppressed(self, pid: int, now: float) -> bool:
        """Check whether a process is still inside its cooldown window.

        Args:
            pid: Process id to check
            now: Current time on the engine's clock

        Returns:
            True if the last alert is younger than the cooldown
        """
        record = self._records.get(pid)
        if record is None:
            return False
        return record.age(now) < self.cooldown_seconds

    def record(self, pid: int, now: float) -> AlertRecord:
        """Store a successful alert, overwriting any previous record."""
        record = self._records.get(pid)
        if record is None:
            record = AlertRecord(pid=pid, last_alert=now)
            self._records[pid] = record
        else:
            record.last_alert = max(record.last_alert, now)
        return record

    def sweep(self, now: float) -> list[int]:
        """Drop records older than ``gc_factor`` cooldowns.

        Returns:
            The process ids that were removed
        """
        max_age = self.cooldown_seconds * self.gc_factor
        expired = [
            pid for pid, record in self._records.items() if record.age(now) >= max_age
        ]
        for pid in expired:
            del self._records[pid]

        if expired:
            self.logger.debug(
                "Pruned alert records",
                removed=len(expired),
                remaining=len(self._records),
                max_age=max_age,
            )
        return expired

    def to_dict(self) -> dict[int, float]:
        return {pid: record.last_alert for pid, record in self._records.items()}
