"""CPU Watcher - per-process CPU alerts with cooldown."""

__version__ = "0.1.0"
