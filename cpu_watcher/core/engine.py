"""Polling loop that turns process samples into rate-limited alerts."""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog

from cpu_watcher.core.message import format_message
from cpu_watcher.core.sampler import ProcessSampler
from cpu_watcher.core.state import AlertTable
from cpu_watcher.models import ProcessSnapshot
from cpu_watcher.notifiers.base import Destination, Notifier

logger = structlog.get_logger()


@dataclass
class TickResult:
    """Summary of one evaluation pass."""

    seen: int = 0
    over_threshold: int = 0
    suppressed: list[int] = field(default_factory=list)
    notified: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    swept: list[int] = field(default_factory=list)
    sample_error: Optional[str] = None


class AlertEngine:
    """Sample processes on a fixed interval and alert on high CPU.

    Everything runs on one thread: processes are evaluated in sampler order
    and each notification completes before the next process is looked at,
    so the alert table needs no locking. Dispatching from a worker pool
    would require guarding the table.
    """

    def __init__(
        self,
        sampler: ProcessSampler,
        notifier: Notifier,
        destination: Destination,
        threshold: float = 50.0,
        check_interval: float = 1.0,
        cooldown_seconds: int = 600,
        gc_factor: int = 5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        hostname: Optional[str] = None,
    ):
        """Initialize the engine.

        Args:
            sampler: Source of process snapshots
            notifier: Delivery backend
            destination: Passed to the notifier unchanged
            threshold: Alert when a process uses at least this much CPU
            check_interval: Seconds to sleep before every tick
            cooldown_seconds: Minimum gap between alerts for one pid
            gc_factor: Records older than this many cooldowns are dropped
            clock: Time source for cooldown arithmetic
            sleep: Called with ``check_interval`` before every tick
            hostname: Host name reported in messages
        """
        self.sampler = sampler
        self.notifier = notifier
        self.destination = destination
        self.threshold = threshold
        self.check_interval = check_interval
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self.sleep = sleep
        self.hostname = hostname
        self.table = AlertTable(cooldown_seconds, gc_factor=gc_factor)
        self.ticks = 0
        self.logger = logger.bind(component="AlertEngine")

    def resolve_command_line(self, proc: ProcessSnapshot) -> str:
        """Best-effort full command line, falling back to the process name."""
        try:
            command_line = self.sampler.command_line(proc.pid)
        except Exception as e:
            self.logger.debug(
                "Command line lookup failed", pid=proc.pid, error=str(e)
            )
            command_line = None
        return command_line or proc.command_line or proc.name

    def notify(self, proc: ProcessSnapshot) -> bool:
        """Send one alert for a process.

        Returns:
            True only if the notifier confirmed delivery
        """
        text = format_message(
            proc, self.threshold, self.resolve_command_line(proc), self.hostname
        )
        try:
            delivered = self.notifier.send(self.destination, text)
        except Exception as e:
            self.logger.error(
                "Error sending notification", pid=proc.pid, error=str(e)
            )
            return False

        if not delivered:
            self.logger.warning("Failed to send notification", pid=proc.pid)
        return bool(delivered)

    def evaluate(self, proc: ProcessSnapshot, result: TickResult) -> None:
        """Apply threshold and cooldown checks to one process."""
        if proc.cpu_percent < self.threshold:
            return

        result.over_threshold += 1
        now = self.clock()
        if self.table.is_suppressed(proc.pid, now):
            self.logger.debug(
                "Alert suppressed by cooldown",
                pid=proc.pid,
                cpu=proc.cpu_percent,
            )
            result.suppressed.append(proc.pid)
            return

        if self.notify(proc):
            self.table.record(proc.pid, now)
            result.notified.append(proc.pid)
            self.logger.info(
                "Alert sent",
                pid=proc.pid,
                name=proc.name,
                cpu=proc.cpu_percent,
                threshold=self.threshold,
            )
        else:
            result.failed.append(proc.pid)

    def tick(self) -> TickResult:
        """Run one evaluation pass over a fresh snapshot."""
        self.ticks += 1
        result = TickResult()

        try:
            processes = self.sampler.snapshot()
        except Exception as e:
            self.logger.error(
                "Error sampling processes", error=str(e), exc_info=True
            )
            processes = []
            result.sample_error = str(e)

        result.seen = len(processes)
        for proc in processes:
            try:
                self.evaluate(proc, result)
            except Exception as e:
                self.logger.error(
                    "Error evaluating process",
                    pid=proc.pid,
                    error=str(e),
                    exc_info=True,
                )
                result.failed.append(proc.pid)

        result.swept = self.table.sweep(self.clock())
        self.logger.debug(
            f"Completed tick {self.ticks}",
            seen=result.seen,
            over_threshold=result.over_threshold,
            notified=len(result.notified),
            tracked=len(self.table),
        )
        return result

    def run(self, max_ticks: Optional[int] = None) -> None:
        """Sleep, tick, repeat.

        Args:
            max_ticks: Stop after this many ticks, None runs forever
        """
        self.logger.info(
            "Watcher started",
            threshold=self.threshold,
            check_interval=self.check_interval,
            cooldown=self.cooldown_seconds,
        )
        completed = 0
        try:
            while max_ticks is None or completed < max_ticks:
                self.sleep(self.check_interval)
                self.tick()
                completed += 1
        except KeyboardInterrupt:
            self.logger.info("Watcher stopped by user")
