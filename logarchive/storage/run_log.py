"""
Run log and run lock for the archiving engine.

The run log is an append-only text file with one line per completed run.
Writers take an exclusive lock and emit each line in a single write so
lines from concurrent processes never interleave.
"""

import fcntl
import logging
import os
from collections import deque
from pathlib import Path
from typing import List, Optional

from logarchive.errors import RunLockedError
from logarchive.storage.archive_models import RunRecord

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".logarchive.lock"


class RunLog:
    """Append-only, human-readable log of archiving runs."""

    def __init__(self, path):
        self.path = Path(path)

    def append(self, record: RunRecord):
        """Append one record as a single line."""
        line = (record.to_log_line() + "\n").encode("utf-8")
        fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                os.write(fd, line)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

        logger.debug(f"Run recorded in {self.path}")

    def read_recent(self, limit: int = 20) -> List[str]:
        """Return the last ``limit`` lines, oldest first."""
        if not self.path.exists():
            return []
        with open(self.path, 'r', encoding='utf-8', errors='replace') as f:
            return [line.rstrip("\n") for line in deque(f, maxlen=limit)]


class RunLock:
    """
    Advisory per-directory lock held for the duration of a run.

    Acquisition never blocks: if another process holds the lock the
    current run fails fast with RunLockedError.
    """

    def __init__(self, directory):
        self.path = Path(directory) / LOCK_FILE_NAME
        self._fd: Optional[int] = None

    def acquire(self):
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise RunLockedError("Another archiving run is in progress", path=str(self.path))
        except OSError:
            os.close(fd)
            raise
        self._fd = fd

    def release(self):
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
