"""
Notification transport interface.
"""

from abc import ABC, abstractmethod


class NotificationTransport(ABC):
    """Abstract interface for notification transports."""

    name = "transport"

    @abstractmethod
    async def send(self, address: str, subject: str, body: str) -> None:
        """
        Deliver one message.

        Raises:
            NotifyError: If the message could not be delivered.
        """
        pass
