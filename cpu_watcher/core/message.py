"""Alert message formatting."""

import socket
from typing import Optional

from cpu_watcher.models import ProcessSnapshot

UNKNOWN = "?"


def format_started(proc: ProcessSnapshot) -> str:
    return proc.start_time.isoformat() if proc.start_time else UNKNOWN


def format_message(
    proc: ProcessSnapshot,
    threshold: float,
    command_line: str,
    hostname: Optional[str] = None,
) -> str:
    """Build the notification text for a process over the threshold.

    Args:
        proc: The offending process
        threshold: Configured CPU threshold in percent
        command_line: Resolved invocation, already falling back to the name
        hostname: Host name to report, defaults to this machine

    Returns:
        Multi-line plain text message
    """
    if hostname is None:
        hostname = socket.gethostname()

    return (
        f"⚠ Process is using >{threshold:.1f}% CPU\n"
        f"Host: {hostname}\n"
        f"Name: {proc.name}\n"
        f"PID: {proc.pid}\n"
        f"CPU: {proc.cpu_percent:.1f}%\n"
        f"Started: {format_started(proc)}\n"
        f"Cmd: {command_line}"
    )
