"""
Archive writer for the archiving engine.

Streams a set of files into one compressed, timestamped bundle. The bundle
is written to a hidden staging file inside the destination directory and
only published under its final name once every file has been written, so a
failed or interrupted write never leaves a partial bundle behind.
"""

import logging
import os
import tarfile
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from logarchive.errors import ArchiveError, ConfigError
from logarchive.storage.archive_models import NOTHING_TO_ARCHIVE, ArchiveBundle, FileCandidate

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
STAGING_SUFFIX = ".partial"
MAX_NAME_ATTEMPTS = 1000

_WRITE_MODES = {
    'tar.gz': 'w:gz',
    'tgz': 'w:gz',
    'tar.bz2': 'w:bz2',
    'tbz2': 'w:bz2',
    'tar.xz': 'w:xz',
    'txz': 'w:xz',
    'tar': 'w',
}


def archive_write_mode(extension: str) -> str:
    """Map a bundle extension to a tarfile write mode."""
    mode = _WRITE_MODES.get(extension.lower().lstrip('.'))
    if mode is None:
        supported = ', '.join(sorted(_WRITE_MODES))
        raise ConfigError(f"Unsupported archive extension '{extension}' (supported: {supported})")
    return mode


def bundle_name(prefix: str, extension: str, when: datetime) -> str:
    """Base bundle file name, e.g. ``logs_archive_20240101_020000.tar.gz``."""
    return f"{prefix}_{when.strftime(TIMESTAMP_FORMAT)}.{extension}"


def _candidate_names(prefix: str, extension: str, when: datetime) -> Iterator[str]:
    stem = f"{prefix}_{when.strftime(TIMESTAMP_FORMAT)}"
    pid = os.getpid()
    yield f"{stem}.{extension}"
    yield f"{stem}_{pid}.{extension}"
    for attempt in range(1, MAX_NAME_ATTEMPTS):
        yield f"{stem}_{pid}_{attempt}.{extension}"


def _arcname(path: Path, base_dir: Optional[Path]) -> str:
    if base_dir is not None:
        try:
            return str(path.relative_to(base_dir))
        except ValueError:
            pass
    return path.name


def _add_member(tar: tarfile.TarFile, path: Path, arcname: str):
    """Add one regular file to an open bundle."""
    tar.add(str(path), arcname=arcname, recursive=False)


def _publish(staging: Path, destination_dir: Path, prefix: str, extension: str, when: datetime) -> Path:
    """
    Move the staging file to the first free final name.

    Hard links refuse to overwrite, so two runs finishing in the same second
    cannot clobber each other. Filesystems without hard links fall back to
    an existence check plus rename.
    """
    for name in _candidate_names(prefix, extension, when):
        final_path = destination_dir / name
        try:
            os.link(staging, final_path)
        except FileExistsError:
            continue
        except OSError:
            if final_path.exists():
                continue
            os.replace(staging, final_path)
            return final_path
        os.unlink(staging)
        return final_path

    raise ArchiveError("No free bundle name", path=str(destination_dir / bundle_name(prefix, extension, when)))


def write_bundle(files: Iterable[Union[Path, str, FileCandidate]], destination_dir, prefix: str,
                 extension: str, base_dir=None, now: Optional[datetime] = None):
    """
    Write ``files`` into a new compressed bundle in ``destination_dir``.

    Args:
        files: Paths (or FileCandidates) of regular files to archive.
        destination_dir: Directory that receives the bundle.
        prefix: Bundle name prefix.
        extension: Bundle extension, which also selects the compression.
        base_dir: Member names are stored relative to this directory.
        now: Timestamp embedded in the bundle name; defaults to now.

    Returns:
        The finalized ArchiveBundle, or NOTHING_TO_ARCHIVE for an empty input.

    Raises:
        ArchiveError: If any file cannot be written. No file is left at the
            final path and the staging file is removed.
        ConfigError: If the extension is not a supported bundle format.
    """
    paths: List[Path] = [f.path if isinstance(f, FileCandidate) else Path(f) for f in files]
    if not paths:
        logger.info("No files to archive")
        return NOTHING_TO_ARCHIVE

    mode = archive_write_mode(extension)
    destination_dir = Path(destination_dir)
    base = Path(base_dir) if base_dir is not None else None
    when = now or datetime.now()

    try:
        destination_dir.mkdir(parents=True, exist_ok=True)
        fd, staging_name = tempfile.mkstemp(prefix=f".{prefix}_", suffix=STAGING_SUFFIX, dir=destination_dir)
    except OSError as e:
        raise ArchiveError("Could not create staging file", detail=e.strerror or str(e),
                           path=str(destination_dir))

    staging = Path(staging_name)
    published = False
    current: Optional[Path] = None
    try:
        with os.fdopen(fd, 'wb') as fileobj:
            with tarfile.open(fileobj=fileobj, mode=mode) as tar:
                for current in paths:
                    _add_member(tar, current, _arcname(current, base))
                    logger.debug(f"Added {current} to bundle")
                current = None
            fileobj.flush()
            os.fsync(fileobj.fileno())

        final_path = _publish(staging, destination_dir, prefix, extension, when)
        published = True
    except ArchiveError:
        raise
    except (OSError, tarfile.TarError) as e:
        detail = getattr(e, 'strerror', None) or str(e)
        if current is not None:
            raise ArchiveError("Failed to add file to bundle", detail=detail, path=str(current))
        raise ArchiveError("Failed to write bundle", detail=detail, path=str(destination_dir))
    finally:
        if not published:
            try:
                staging.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"Failed to remove staging file {staging}: {e}")

    bundle = ArchiveBundle(
        path=final_path,
        created_at=when,
        source_file_count=len(paths),
        members=tuple(paths),
        size_bytes=final_path.stat().st_size,
    )
    logger.info(f"Bundle written: {final_path} ({len(paths)} file(s), {bundle.size_bytes / 1024:.1f} KB)")
    return bundle


def verify_bundle(bundle: ArchiveBundle) -> bool:
    """Re-open a finalized bundle and check it holds every archived file."""
    try:
        with tarfile.open(bundle.path, 'r:*') as tar:
            member_count = sum(1 for member in tar.getmembers() if member.isfile())
    except (OSError, tarfile.TarError) as e:
        logger.error(f"Cannot read bundle {bundle.path}: {e}")
        return False

    if member_count != bundle.source_file_count:
        logger.error(f"Bundle {bundle.path} holds {member_count} file(s), expected {bundle.source_file_count}")
        return False
    return True


def list_bundles(directory, extension: str) -> List[Path]:
    """Finalized bundles in ``directory``, newest first."""
    directory = Path(directory)
    if not directory.is_dir():
        return []

    suffix = f".{extension.lstrip('.')}"
    bundles = [
        p for p in directory.iterdir()
        if p.is_file() and p.name.endswith(suffix) and not p.name.startswith('.')
    ]
    return sorted(bundles, key=lambda p: p.stat().st_mtime, reverse=True)
