"""
Recurring-execution registration for logarchive.
"""

from .cron_registrar import CronRegistrar, InMemoryCrontab, SystemCrontab, build_invocation_command

__all__ = [
    'CronRegistrar',
    'InMemoryCrontab',
    'SystemCrontab',
    'build_invocation_command'
]
