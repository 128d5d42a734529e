"""Sampling and alerting core."""

from .engine import AlertEngine, TickResult
from .sampler import ProcessSampler, PsutilSampler
from .state import AlertTable

__all__ = ["AlertEngine", "AlertTable", "ProcessSampler", "PsutilSampler", "TickResult"]
