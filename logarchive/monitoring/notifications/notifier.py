"""
Notifier for the archiving engine.

Wraps a transport so delivery failures never escape: they are logged as
warnings and reported back as an undelivered NotifyResult.
"""

from typing import Optional

import structlog

from logarchive.errors import NotifyError
from logarchive.monitoring.notifications.base import NotificationTransport
from logarchive.monitoring.notifications.email_notification import EmailNotificationChannel
from logarchive.monitoring.notifications.mail_command import MailCommandTransport
from logarchive.storage.archive_models import NotifyResult

logger = structlog.get_logger(__name__)


class Notifier:
    """Delivers run reports to a configured channel."""

    def __init__(self, transport: Optional[NotificationTransport] = None,
                 unavailable_reason: Optional[str] = None):
        self.transport = transport
        self.unavailable_reason = unavailable_reason

    async def notify(self, channel: Optional[str], subject: str, body: str) -> NotifyResult:
        """
        Send ``subject``/``body`` to ``channel``.

        An unset channel is a silent no-op. Never raises for delivery
        problems.
        """
        if not channel:
            logger.debug("Notification channel not set, skipping notification", subject=subject)
            return NotifyResult(delivered=False)

        if self.transport is None:
            detail = self.unavailable_reason or "no notification transport configured"
            logger.warning("Notification not sent", channel=channel, reason=detail)
            return NotifyResult(delivered=False, detail=detail)

        try:
            await self.transport.send(channel, subject, body)
        except NotifyError as e:
            logger.warning("Failed to send notification",
                           channel=channel,
                           transport=self.transport.name,
                           error=str(e))
            return NotifyResult(delivered=False, detail=str(e))

        logger.info("Notification sent", channel=channel, transport=self.transport.name, subject=subject)
        return NotifyResult(delivered=True)


def create_notifier(transport: str = "mail", mail_command: str = "mail",
                    from_email: str = "alerts@mail.wraith-protocol.com",
                    api_url: str = "https://api.maildiver.com/v1/messages",
                    rate_limit_per_minute: int = 60) -> Notifier:
    """Create a Notifier for the named transport ('mail', 'maildiver' or 'none')."""
    transport = transport.lower()

    if transport == "none":
        return Notifier(unavailable_reason="notifications disabled")

    if transport == "mail":
        return Notifier(MailCommandTransport(mail_command=mail_command))

    if transport == "maildiver":
        try:
            channel = EmailNotificationChannel(
                from_email=from_email,
                api_url=api_url,
                rate_limit_per_minute=rate_limit_per_minute,
            )
        except ValueError as e:
            logger.warning("MailDiver transport unavailable", error=str(e))
            return Notifier(unavailable_reason=str(e))
        return Notifier(channel)

    logger.warning("Unknown notification transport", transport=transport)
    return Notifier(unavailable_reason=f"unknown notification transport '{transport}'")
