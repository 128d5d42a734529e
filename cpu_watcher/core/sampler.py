"""Process sampling backends."""

import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import psutil
import structlog

from cpu_watcher.models import ProcessSnapshot

logger = structlog.get_logger()

SAMPLE_ATTRS = ["pid", "name", "cpu_percent", "create_time"]


class ProcessSampler(ABC):
    """Base class for process samplers."""

    @abstractmethod
    def snapshot(self) -> list[ProcessSnapshot]:
        """Read all running processes.

        Returns:
            A fresh list of snapshots, possibly empty
        """
        pass

    @abstractmethod
    def command_line(self, pid: int) -> Optional[str]:
        """Resolve the full invocation of a process.

        Args:
            pid: Process id to look up

        Returns:
            The argument vector joined by spaces, or None if unavailable
        """
        pass


def _start_time(create_time: Optional[float]) -> Optional[datetime]:
    if not create_time:
        return None
    try:
        return datetime.fromtimestamp(create_time, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


class PsutilSampler(ProcessSampler):
    """Sample processes through psutil.

    psutil reports per-process CPU usage relative to the previous call on
    the same cached Process object, so the first read after startup is
    always zero. ``prime`` takes that throwaway read.
    """

    def __init__(self, prime: bool = True, prime_delay: float = 0.1):
        self.logger = logger.bind(component="PsutilSampler")
        self.prime_delay = prime_delay
        if prime:
            self.prime()

    def prime(self) -> None:
        """Take an initial CPU reading for every process."""
        for proc in psutil.process_iter():
            try:
                proc.cpu_percent(interval=None)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        time.sleep(self.prime_delay)
        self.logger.debug("Sampler primed")

    def snapshot(self) -> list[ProcessSnapshot]:
        snapshots = []
        for proc in psutil.process_iter(SAMPLE_ATTRS):
            try:
                info = proc.info
                snapshots.append(
                    ProcessSnapshot(
                        pid=info["pid"],
                        name=info.get("name") or "",
                        cpu_percent=float(info.get("cpu_percent") or 0.0),
                        start_time=_start_time(info.get("create_time")),
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        self.logger.debug("Snapshot taken", processes=len(snapshots))
        return snapshots

    def command_line(self, pid: int) -> Optional[str]:
        try:
            args = [arg for arg in psutil.Process(pid).cmdline() if arg]
        except (psutil.Error, OSError) as e:
            self.logger.debug("Command line unavailable", pid=pid, error=str(e))
            return None
        return " ".join(args) if args else None
