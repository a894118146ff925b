"""
Monitoring module for logarchive.

This module provides run metrics and notification delivery for:
- Prometheus metrics describing archiving runs
- Success and failure reports via mail or MailDiver
"""

from .run_metrics import RunMetrics
from .notifications import EmailNotificationChannel, MailCommandTransport, Notifier, create_notifier

__all__ = [
    'RunMetrics',
    'EmailNotificationChannel',
    'MailCommandTransport',
    'Notifier',
    'create_notifier'
]
