"""Notification backends."""

from .base import NotificationError, Notifier
from .telegram import AppriseNotifier, LogNotifier, build_telegram_url, with_timeouts

__all__ = [
    "AppriseNotifier",
    "LogNotifier",
    "NotificationError",
    "Notifier",
    "build_telegram_url",
    "with_timeouts",
]
