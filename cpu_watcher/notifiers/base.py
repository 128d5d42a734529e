"""Notifier contract."""

from abc import ABC, abstractmethod
from typing import Union

Destination = Union[str, list[str]]


class NotificationError(Exception):
    """Raised when a notification could not be handed to its transport."""


class Notifier(ABC):
    """Base class for notification backends."""

    @abstractmethod
    def send(self, destination: Destination, text: str) -> bool:
        """Deliver a text message.

        Args:
            destination: Where to deliver, backend specific
            text: Plain text body

        Returns:
            True if the message was delivered, False otherwise

        Raises:
            NotificationError: If the transport failed outright
        """
        pass
