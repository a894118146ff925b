"""
Notification channels for logarchive run reports.

Provides notification delivery via:
- The local ``mail`` command
- Email via MailDiver API
"""

from .email_notification import EmailNotificationChannel
from .mail_command import MailCommandTransport
from .notifier import Notifier, create_notifier

__all__ = [
    'EmailNotificationChannel',
    'MailCommandTransport',
    'Notifier',
    'create_notifier'
]
