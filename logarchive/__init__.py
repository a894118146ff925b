"""
logarchive - Retention-policy archiving engine for log directories.

This package archives aging log files into timestamped compressed bundles,
prunes archived originals and stale bundles, notifies operators and can
register itself as a recurring cron job.
"""

__version__ = "0.1.0"
__author__ = "Taamir Ransome"
__email__ = "taamir@example.com"
