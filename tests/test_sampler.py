"""Test the psutil sampler."""

from datetime import datetime, timezone

import psutil

from cpu_watcher.core import sampler as sampler_module
from cpu_watcher.core.sampler import PsutilSampler


class FakeProcess:
    def __init__(self, **info):
        self.info = info


def test_snapshot_reads_process_info(monkeypatch):
    processes = [
        FakeProcess(pid=1, name="init", cpu_percent=0.5, create_time=1704164645.0),
        FakeProcess(pid=2, name=None, cpu_percent=None, create_time=0.0),
        FakeProcess(pid=3, name="burner", cpu_percent=180.0, create_time=None),
    ]
    monkeypatch.setattr(
        sampler_module.psutil, "process_iter", lambda attrs=None: iter(processes)
    )

    snapshots = PsutilSampler(prime=False).snapshot()

    assert [s.pid for s in snapshots] == [1, 2, 3]
    assert snapshots[0].start_time == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert snapshots[1].name == ""
    assert snapshots[1].cpu_percent == 0.0
    assert snapshots[1].start_time is None
    assert snapshots[2].cpu_percent == 180.0
    assert snapshots[2].start_time is None


def test_prime_reads_every_process(monkeypatch):
    calls = []

    class PrimedProcess:
        def __init__(self, pid, error=None):
            self.pid = pid
            self.error = error

        def cpu_percent(self, interval=None):
            calls.append(self.pid)
            if self.error:
                raise self.error
            return 0.0

    processes = [
        PrimedProcess(1),
        PrimedProcess(2, psutil.NoSuchProcess(2)),
        PrimedProcess(3),
    ]
    monkeypatch.setattr(sampler_module.psutil, "process_iter", lambda: iter(processes))
    monkeypatch.setattr(sampler_module.time, "sleep", lambda seconds: None)

    PsutilSampler()

    assert calls == [1, 2, 3]


def test_command_line_joins_arguments(monkeypatch):
    class CmdProcess:
        def __init__(self, pid):
            self.pid = pid

        def cmdline(self):
            return ["python3", "-m", "http.server", ""]

    monkeypatch.setattr(sampler_module.psutil, "Process", CmdProcess)

    assert PsutilSampler(prime=False).command_line(10) == "python3 -m http.server"


def test_command_line_unavailable(monkeypatch):
    class Kernel:
        def __init__(self, pid):
            pass

        def cmdline(self):
            return []

    class Gone:
        def __init__(self, pid):
            raise psutil.NoSuchProcess(pid)

    class Denied:
        def __init__(self, pid):
            self.pid = pid

        def cmdline(self):
            raise psutil.AccessDenied(self.pid)

    sampler = PsutilSampler(prime=False)
    for fake in (Kernel, Gone, Denied):
        monkeypatch.setattr(sampler_module.psutil, "Process", fake)
        assert sampler.command_line(2) is None
