"""
Cron registrar for logarchive.

Installs, updates and removes the single crontab line that re-invokes the
archiver non-interactively. The managed line is identified by a marker
token in its command; every other crontab line is preserved as-is.
"""

import logging
import re
import shlex
import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from logarchive.errors import ScheduleError
from logarchive.storage.archive_models import RetentionConfig, ScheduleEntry

logger = logging.getLogger(__name__)

DEFAULT_MARKER = "logarchive-auto-archive"
CRON_TRIGGER_ARGUMENT = "auto_archive_cron_trigger"

CRON_MACROS = {
    '@reboot', '@yearly', '@annually', '@monthly', '@weekly', '@daily', '@midnight', '@hourly'
}
_CRON_FIELD = re.compile(r"^[0-9A-Za-z*/,\-]+$")
_MARKER = re.compile(r"^[A-Za-z0-9_.-]+$")


def validate_cron_expression(cron_expression: str) -> str:
    """Return the normalized expression, or raise ScheduleError."""
    expression = " ".join((cron_expression or "").split())
    if not expression:
        raise ScheduleError("Cron schedule is empty")

    if expression.startswith('@'):
        if expression not in CRON_MACROS:
            raise ScheduleError(f"Unknown cron macro '{expression}'")
        return expression

    fields = expression.split(' ')
    if len(fields) != 5:
        raise ScheduleError(f"Cron schedule must have 5 fields, got {len(fields)}: '{expression}'")
    for value in fields:
        if not _CRON_FIELD.match(value):
            raise ScheduleError(f"Invalid cron field '{value}' in '{expression}'")
    return expression


def validate_marker(marker: str) -> str:
    """Markers must survive shell quoting unchanged to be found again."""
    if not marker or not _MARKER.fullmatch(marker):
        raise ScheduleError(f"Invalid schedule marker '{marker}' (allowed: letters, digits, _ . -)")
    return marker


def line_has_marker(line: str, marker: str) -> bool:
    """True if a crontab line is the one managed under ``marker``."""
    stripped = line.strip()
    if not stripped or stripped.startswith('#'):
        return False
    return marker in stripped.split()


def build_invocation_command(config: RetentionConfig, marker: str = DEFAULT_MARKER,
                             python: Optional[str] = None) -> str:
    """
    Command line that re-runs the archiver with ``config`` baked in.

    The scheduled run gets its whole configuration from these flags. cron
    starts jobs in the user's home directory, so the source is made absolute.
    """
    validate_marker(marker)
    source = Path(config.source_directory).expanduser().resolve()
    parts = [
        python or sys.executable, "-m", "logarchive.cli.main", CRON_TRIGGER_ARGUMENT,
        "--source-dir", str(source),
        "--log-retention-days", str(config.log_retention_days),
        "--backup-retention-days", str(config.backup_retention_days),
        "--prefix", config.archive_name_prefix,
        "--extension", config.archive_extension,
    ]
    if config.notify_channel:
        parts += ["--notify", config.notify_channel]
    parts += ["--schedule-marker", marker]
    return " ".join(shlex.quote(part) for part in parts)


class CrontabBackend(ABC):
    """Access to a user's crontab."""

    @abstractmethod
    def read(self) -> str:
        pass

    @abstractmethod
    def write(self, content: str) -> None:
        pass


class SystemCrontab(CrontabBackend):
    """The current user's crontab, through the ``crontab`` command."""

    def __init__(self, crontab_command: str = "crontab", timeout_seconds: float = 30.0):
        self.crontab_command = crontab_command
        self.timeout_seconds = timeout_seconds

    def _run(self, args: List[str], input_text: Optional[str] = None) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self.crontab_command] + args,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError:
            raise ScheduleError(f"'{self.crontab_command}' command not found",
                                detail="Install cron or check PATH.")
        except subprocess.TimeoutExpired:
            raise ScheduleError(f"'{self.crontab_command}' timed out")
        except OSError as e:
            raise ScheduleError(f"Cannot run '{self.crontab_command}'", detail=str(e))

    def read(self) -> str:
        result = self._run(["-l"])
        if result.returncode == 0:
            return result.stdout
        if "no crontab" in result.stderr.lower():
            return ""
        raise ScheduleError("Failed to read crontab", detail=result.stderr.strip())

    def write(self, content: str) -> None:
        result = self._run(["-"], input_text=content)
        if result.returncode != 0:
            raise ScheduleError("Failed to install crontab", detail=result.stderr.strip())


class InMemoryCrontab(CrontabBackend):
    """A crontab held in memory."""

    def __init__(self, content: str = ""):
        self.content = content
        self.writes = 0

    def read(self) -> str:
        return self.content

    def write(self, content: str) -> None:
        self.content = content
        self.writes += 1


class CronRegistrar:
    """Manages the archiver's own crontab entry."""

    def __init__(self, backend: Optional[CrontabBackend] = None):
        self.backend = backend or SystemCrontab()

    def _other_lines(self, marker: str) -> List[str]:
        return [line for line in self.backend.read().splitlines() if not line_has_marker(line, marker)]

    def install_schedule(self, cron_expression: str, invocation_command: str,
                         marker: str = DEFAULT_MARKER) -> ScheduleEntry:
        """
        Install or replace the entry identified by ``marker``.

        Re-registering with the same marker replaces the previous entry.

        Raises:
            ScheduleError: For an invalid expression or if the crontab cannot
                be read or written. Not retried.
        """
        validate_marker(marker)
        if not invocation_command.strip() or '\n' in invocation_command:
            raise ScheduleError("Invalid invocation command")

        expression = validate_cron_expression(cron_expression)
        command = invocation_command.strip()
        if marker not in command.split():
            command = f"{command} {shlex.quote(marker)}"

        entry = ScheduleEntry(cron_expression=expression, invocation_command=command, marker=marker)
        lines = self._other_lines(marker) + [entry.to_line()]
        self.backend.write("\n".join(lines) + "\n")

        logger.info(f"Cron job installed: {entry.to_line()}")
        return entry

    def remove_schedule(self, marker: str = DEFAULT_MARKER) -> bool:
        """Remove the entry identified by ``marker``. Returns False if there was none."""
        validate_marker(marker)
        current = self.backend.read().splitlines()
        remaining = [line for line in current if not line_has_marker(line, marker)]
        if len(remaining) == len(current):
            logger.info(f"No cron job found for marker {marker}")
            return False

        self.backend.write("\n".join(remaining) + "\n" if remaining else "")
        logger.info(f"Cron job removed for marker {marker}")
        return True

    def find_schedule(self, marker: str = DEFAULT_MARKER) -> Optional[str]:
        """The crontab line managed under ``marker``, if any."""
        validate_marker(marker)
        for line in self.backend.read().splitlines():
            if line_has_marker(line, marker):
                return line
        return None
