"""
Error taxonomy for the archiving engine.

Every error carries the raw diagnostic text produced by the failing
collaborator so it can be logged and mirrored into notifications verbatim.
"""

from typing import Optional


class LogArchiveError(Exception):
    """Base class for all archiving engine errors."""

    def __init__(self, message: str, detail: Optional[str] = None, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        self.path = path

    def __str__(self) -> str:
        text = self.message
        if self.path:
            text = f"{text} [{self.path}]"
        if self.detail:
            text = f"{text}: {self.detail}"
        return text


class ConfigError(LogArchiveError):
    """Missing or invalid required setting. Fails the run before any mutation."""


class ScanError(LogArchiveError):
    """File enumeration could not start."""


class ArchiveError(LogArchiveError):
    """Bundle write failed. No partial bundle is left behind."""


class PruneError(LogArchiveError):
    """A single file could not be deleted. Collected, never raised in bulk."""


class NotifyError(LogArchiveError):
    """Notification delivery failed."""


class ScheduleError(LogArchiveError):
    """The recurring-task scheduler could not be read or updated."""


class RunLockedError(LogArchiveError):
    """Another run holds the lock for the same source directory."""
