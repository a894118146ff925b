"""
Retention pruner for the archiving engine.

Deletes files past a retention window. Deletion is best-effort per file:
a failure on one file is recorded and the remaining files are still tried.
"""

import fnmatch
import logging
import time
from pathlib import Path
from typing import Iterable, Optional

from logarchive.errors import PruneError
from logarchive.storage.age_filter import find_older_than
from logarchive.storage.archive_models import PruneResult

logger = logging.getLogger(__name__)


def delete_files(paths: Iterable, dry_run: bool = False) -> PruneResult:
    """
    Delete an explicit list of files.

    Files that are already gone count as neither deleted nor failed, so
    running the same deletion twice is harmless.
    """
    result = PruneResult()

    for path in paths:
        path = Path(path)
        if dry_run:
            if path.exists():
                logger.info(f"[dry run] Would delete {path}")
                result.deleted_count += 1
                result.deleted_paths.append(path)
            continue

        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"Already removed: {path}")
            continue
        except OSError as e:
            error = PruneError("Failed to delete file", detail=e.strerror or str(e), path=str(path))
            logger.error(str(error))
            result.errors.append(error)
            continue

        result.deleted_count += 1
        result.deleted_paths.append(path)
        logger.debug(f"Deleted {path}")

    return result


def delete_older_than(root, max_depth: int, min_age_days: int, name_pattern: Optional[str] = None,
                      now: Optional[float] = None, dry_run: bool = False) -> PruneResult:
    """
    Delete regular files under ``root`` strictly older than ``min_age_days``.

    Args:
        root: Directory to prune.
        max_depth: How deep to look; 1 means only files directly in ``root``.
        min_age_days: Retention window in days.
        name_pattern: Optional glob the file name must match, e.g. ``*.tar.gz``.
        now: Reference time as a POSIX timestamp.
        dry_run: Report what would be deleted without deleting.

    Returns:
        PruneResult. Scan problems below ``root`` are reported as errors too.

    Raises:
        ScanError: If ``root`` itself cannot be listed.
    """
    now = time.time() if now is None else now
    scan = find_older_than(root, min_age_days, max_depth=max_depth, now=now)

    paths = [
        candidate.path for candidate in scan.candidates
        if name_pattern is None or fnmatch.fnmatch(candidate.path.name, name_pattern)
    ]

    result = delete_files(paths, dry_run=dry_run)
    for warning in scan.warnings:
        result.errors.append(PruneError("Scan problem while pruning", detail=warning, path=str(root)))

    logger.info(f"Pruned {result.deleted_count} file(s) older than {min_age_days} days from {root}"
                + (f" ({len(result.errors)} error(s))" if result.errors else ""))
    return result
