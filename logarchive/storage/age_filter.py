"""
Age filter for the archiving engine.

Enumerates regular files under a root directory, down to a fixed depth,
whose modification time is strictly older than a threshold.
"""

import logging
import os
import stat
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from logarchive.errors import ScanError
from logarchive.storage.archive_models import FileCandidate, ScanResult

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def is_older_than(mtime: float, min_age_days: int, now: float) -> bool:
    """True if a file modified at ``mtime`` is strictly older than ``min_age_days``."""
    return (now - mtime) > min_age_days * SECONDS_PER_DAY


def find_older_than(root, min_age_days: int, max_depth: int = 1,
                    exclude: Iterable = (), now: Optional[float] = None) -> ScanResult:
    """
    Find regular files under ``root`` older than ``min_age_days``.

    Args:
        root: Directory to scan.
        min_age_days: Files must be strictly older than this many days.
        max_depth: 1 scans only the files directly inside ``root``; each extra
            level descends one more directory.
        exclude: Directories that are never descended into.
        now: Reference time as a POSIX timestamp; defaults to the current time.

    Returns:
        ScanResult with candidates sorted by path and any non-fatal warnings.

    Raises:
        ScanError: If ``root`` itself cannot be listed.
    """
    if min_age_days < 0:
        raise ValueError(f"min_age_days must be non-negative, got {min_age_days}")
    if max_depth < 1:
        raise ValueError(f"max_depth must be at least 1, got {max_depth}")

    root = Path(root)
    now = time.time() if now is None else now
    excluded = {os.path.realpath(p) for p in exclude}
    result = ScanResult()

    try:
        root_entries = list(os.scandir(root))
    except OSError as e:
        raise ScanError("Cannot scan log directory", detail=e.strerror or str(e), path=str(root))

    pending = [(root_entries, 1)]
    while pending:
        entries, depth = pending.pop()
        for entry in entries:
            try:
                st = entry.stat(follow_symlinks=False)
            except FileNotFoundError:
                # removed between listing and stat
                continue
            except OSError as e:
                result.warnings.append(f"Cannot stat {entry.path}: {e.strerror or e}")
                continue

            if stat.S_ISDIR(st.st_mode):
                if depth >= max_depth or os.path.realpath(entry.path) in excluded:
                    continue
                try:
                    pending.append((list(os.scandir(entry.path)), depth + 1))
                except OSError as e:
                    result.warnings.append(f"Cannot scan {entry.path}: {e.strerror or e}")
                continue

            if not stat.S_ISREG(st.st_mode):
                continue

            if is_older_than(st.st_mtime, min_age_days, now):
                result.candidates.append(FileCandidate(
                    path=Path(entry.path),
                    last_modified_time=datetime.fromtimestamp(st.st_mtime),
                ))

    result.candidates.sort(key=lambda candidate: str(candidate.path))

    for warning in result.warnings:
        logger.warning(warning)
    logger.debug(f"Found {len(result.candidates)} file(s) older than {min_age_days} days in {root}")

    return result
