"""
Data models for the archiving engine.

This module contains the data classes and enums shared by the scanner,
archive writer, pruner, run log and coordinator.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from logarchive.errors import PruneError

DEFAULT_SOURCE_DIRECTORY = "/var/log"
DEFAULT_LOG_RETENTION_DAYS = 7
DEFAULT_BACKUP_RETENTION_DAYS = 30
DEFAULT_ARCHIVE_PREFIX = "logs_archive"
DEFAULT_ARCHIVE_EXTENSION = "tar.gz"
DEFAULT_ARCHIVE_DIR_NAME = "archive"
DEFAULT_RUN_LOG_FILE = "archive_log.txt"

SUBJECT_SUCCESS = "Log Archiving Successful"
SUBJECT_FAILURE = "Log Archiving Failed"


class RunOutcome(Enum):
    """Final outcome of a single archiving run."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class RunState(Enum):
    """States the run coordinator moves through."""
    IDLE = "idle"
    VALIDATING = "validating"
    SCANNING = "scanning"
    ARCHIVING = "archiving"
    PRUNING_ORIGINALS = "pruning_originals"
    PRUNING_BUNDLES = "pruning_bundles"
    NOTIFYING = "notifying"
    DONE = "done"


@dataclass(frozen=True)
class RetentionConfig:
    """Settings for one archiving run. Never mutated; use with_changes()."""
    source_directory: Optional[str] = None
    log_retention_days: int = DEFAULT_LOG_RETENTION_DAYS
    backup_retention_days: int = DEFAULT_BACKUP_RETENTION_DAYS
    notify_channel: Optional[str] = None
    archive_name_prefix: str = DEFAULT_ARCHIVE_PREFIX
    archive_extension: str = DEFAULT_ARCHIVE_EXTENSION
    archive_dir_name: str = DEFAULT_ARCHIVE_DIR_NAME
    run_log_file: str = DEFAULT_RUN_LOG_FILE
    max_depth: int = 1

    def with_changes(self, **changes) -> "RetentionConfig":
        """Return a copy of this config with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    @property
    def archive_directory(self) -> Optional[Path]:
        if not self.source_directory:
            return None
        return Path(self.source_directory) / self.archive_dir_name

    @property
    def run_log_path(self) -> Optional[Path]:
        archive_dir = self.archive_directory
        return archive_dir / self.run_log_file if archive_dir else None


@dataclass(frozen=True)
class FileCandidate:
    """A regular file selected by the age filter."""
    path: Path
    last_modified_time: datetime


@dataclass
class ScanResult:
    """Files found by a scan plus non-fatal problems met along the way."""
    candidates: List[FileCandidate] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def paths(self) -> List[Path]:
        return [candidate.path for candidate in self.candidates]


@dataclass(frozen=True)
class ArchiveBundle:
    """A finalized, immutable compressed bundle."""
    path: Path
    created_at: datetime
    source_file_count: int
    members: Tuple[Path, ...] = ()
    size_bytes: int = 0


class _NothingToArchive:
    """Sentinel returned when the archive writer receives no files."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOTHING_TO_ARCHIVE"


NOTHING_TO_ARCHIVE = _NothingToArchive()


@dataclass
class PruneResult:
    """Outcome of a best-effort deletion pass."""
    deleted_count: int = 0
    errors: List[PruneError] = field(default_factory=list)
    deleted_paths: List[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class NotifyResult:
    """Outcome of a notification attempt."""
    delivered: bool
    detail: Optional[str] = None


@dataclass(frozen=True)
class ScheduleEntry:
    """A recurring-execution entry managed in the user's crontab."""
    cron_expression: str
    invocation_command: str
    marker: str

    def to_line(self) -> str:
        # cron turns a bare % into a newline
        command = self.invocation_command.replace("%", "\\%")
        return f"{self.cron_expression} {command}"


@dataclass(frozen=True)
class RunRecord:
    """Result of one archiving run. Appended to the run log, never rewritten."""
    timestamp: datetime
    outcome: RunOutcome
    archive_path: Optional[Path] = None
    files_archived: int = 0
    files_deleted: int = 0
    backups_deleted: int = 0
    error_detail: Optional[str] = None
    warnings: Tuple[str, ...] = ()
    duration_seconds: float = 0.0

    @property
    def exit_code(self) -> int:
        return 1 if self.outcome is RunOutcome.FAILURE else 0

    def to_log_line(self) -> str:
        """Render the record as a single human-readable line."""
        parts = [
            self.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            f"outcome={self.outcome.value}",
            f"archive={self.archive_path if self.archive_path else '-'}",
            f"files_archived={self.files_archived}",
            f"files_deleted={self.files_deleted}",
            f"backups_deleted={self.backups_deleted}",
            f"warnings={len(self.warnings)}",
            f"duration={self.duration_seconds:.2f}s",
        ]
        if self.error_detail:
            # newlines would split the record across lines
            parts.append(f"error=\"{_single_line(self.error_detail)}\"")
        return " ".join(parts)


def _single_line(text: str) -> str:
    return " | ".join(line.strip() for line in text.splitlines() if line.strip()).replace('"', "'")
