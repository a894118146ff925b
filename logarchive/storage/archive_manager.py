"""
Main archive manager - orchestrates an archiving run.

This is the entry point that coordinates validation, scanning, bundle
writing, pruning, notification and the run log for a single invocation.
"""

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from logarchive.errors import ArchiveError, ConfigError, RunLockedError, ScanError
from logarchive.monitoring.notifications.notifier import Notifier
from logarchive.monitoring.run_metrics import RunMetrics
from logarchive.storage.age_filter import find_older_than
from logarchive.storage.archive_config import validate_config
from logarchive.storage.archive_models import (
    SUBJECT_FAILURE,
    SUBJECT_SUCCESS,
    ArchiveBundle,
    RetentionConfig,
    RunOutcome,
    RunRecord,
    RunState,
)
from logarchive.storage.archive_writer import list_bundles, verify_bundle, write_bundle
from logarchive.storage.retention_pruner import delete_files, delete_older_than
from logarchive.storage.run_log import RunLock, RunLog

logger = logging.getLogger(__name__)


def build_report(record: RunRecord, config: RetentionConfig) -> Tuple[str, str]:
    """Subject and body of the notification for a finished run."""
    when = record.timestamp.strftime("%Y-%m-%d %H:%M:%S")
    lines: List[str] = []

    if record.outcome is RunOutcome.SUCCESS:
        subject = SUBJECT_SUCCESS
        if record.archive_path:
            lines.append(f"Logs archived successfully in {record.archive_path} on {when}.")
        else:
            lines.append(f"No logs older than {config.log_retention_days} days found to archive "
                         f"in {config.source_directory} on {when}.")
    elif record.outcome is RunOutcome.PARTIAL:
        subject = SUBJECT_FAILURE
        lines.append(f"Log archiving successful in {record.archive_path}, "
                     f"BUT deleting original logs failed on {when}.")
    else:
        subject = SUBJECT_FAILURE
        lines.append(f"Log archiving failed on {when}.")

    lines += [
        "",
        f"Log directory: {config.source_directory or 'Not Set'}",
        f"Files archived: {record.files_archived}",
        f"Original logs deleted: {record.files_deleted}",
        f"Backup archives older than {config.backup_retention_days} days deleted: {record.backups_deleted}",
    ]

    if record.error_detail:
        lines += ["", "Error output:", record.error_detail]
    if record.warnings:
        lines += ["", "Warnings:"] + [f"- {warning}" for warning in record.warnings]

    return subject, "\n".join(lines)


class ArchiveManager:
    """
    Orchestrates a single archiving run.

    Runs move through IDLE, VALIDATING, SCANNING, ARCHIVING,
    PRUNING_ORIGINALS, PRUNING_BUNDLES, NOTIFYING and DONE. Each run produces
    exactly one RunRecord and exactly one notification.
    """

    def __init__(self, notifier: Optional[Notifier] = None, metrics: Optional[RunMetrics] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.notifier = notifier or Notifier()
        self.metrics = metrics or RunMetrics()
        self.clock = clock or datetime.now
        self.state = RunState.IDLE
        self.state_history: List[RunState] = []

    def _enter(self, state: RunState):
        self.state = state
        self.state_history.append(state)
        logger.debug(f"Run state: {state.value}")

    async def run(self, config: RetentionConfig, dry_run: bool = False) -> RunRecord:
        """
        Run the full archiving pipeline once.

        Args:
            config: Settings for this run.
            dry_run: Scan and report without writing, deleting or notifying.

        Returns:
            The RunRecord for this run. Failures of individual steps are
            reported through the record, not raised.
        """
        self.state_history = []
        started_at = self.clock()
        start = time.monotonic()

        self._enter(RunState.VALIDATING)
        try:
            source = validate_config(config)
        except ConfigError as e:
            logger.error(f"Error: {e}")
            record = RunRecord(timestamp=started_at, outcome=RunOutcome.FAILURE, error_detail=str(e),
                               duration_seconds=time.monotonic() - start)
            return await self._finish(config, record, run_log=None, dry_run=dry_run)

        archive_dir = source / config.archive_dir_name

        if dry_run:
            record = self._preview(config, source, archive_dir, started_at, start)
            self._enter(RunState.DONE)
            return record

        try:
            archive_dir.mkdir(exist_ok=True)
        except OSError as e:
            message = f"Could not create archive directory '{archive_dir}': {e.strerror or e}"
            logger.error(f"Error: {message}")
            record = RunRecord(timestamp=started_at, outcome=RunOutcome.FAILURE, error_detail=message,
                               duration_seconds=time.monotonic() - start)
            return await self._finish(config, record, run_log=None)

        run_log = RunLog(archive_dir / config.run_log_file)
        lock = RunLock(archive_dir)
        try:
            lock.acquire()
        except (RunLockedError, OSError) as e:
            logger.error(f"Error: {e}")
            record = RunRecord(timestamp=started_at, outcome=RunOutcome.FAILURE, error_detail=str(e),
                               duration_seconds=time.monotonic() - start)
            return await self._finish(config, record, run_log=run_log)

        try:
            record = self._run_steps(config, source, archive_dir, started_at, start)
            return await self._finish(config, record, run_log=run_log)
        finally:
            lock.release()

    def _run_steps(self, config: RetentionConfig, source: Path, archive_dir: Path,
                   started_at: datetime, start: float) -> RunRecord:
        """Scan, archive and prune. Every step failure is folded into the record."""
        outcome = RunOutcome.SUCCESS
        errors: List[str] = []
        warnings: List[str] = []
        bundle: Optional[ArchiveBundle] = None
        files_deleted = 0

        self._enter(RunState.SCANNING)
        logger.info(f"Searching for logs older than {config.log_retention_days} days in {source}...")
        candidates = []
        try:
            scan = find_older_than(source, config.log_retention_days, max_depth=config.max_depth,
                                   exclude=[archive_dir], now=started_at.timestamp())
            candidates = scan.candidates
            warnings += scan.warnings
        except ScanError as e:
            outcome = RunOutcome.FAILURE
            errors.append(f"Searching for logs failed: {e}")
            logger.error(f"Error: {errors[-1]}")

        if outcome is not RunOutcome.FAILURE and not candidates:
            logger.info(f"No logs older than {config.log_retention_days} days found to archive in {source}.")

        if candidates:
            self._enter(RunState.ARCHIVING)
            logger.info(f"Found {len(candidates)} log file(s) to archive.")
            try:
                bundle = write_bundle(candidates, archive_dir, config.archive_name_prefix,
                                      config.archive_extension, base_dir=source, now=started_at)
            except ArchiveError as e:
                outcome = RunOutcome.FAILURE
                errors.append(f"Archiving failed: {e}")
                logger.error(f"Error: {errors[-1]}")

            if bundle and not verify_bundle(bundle):
                outcome = RunOutcome.FAILURE
                errors.append(f"Archiving failed: bundle {bundle.path} did not verify")
                logger.error(f"Error: {errors[-1]}")
                try:
                    bundle.path.unlink()
                except OSError as e:
                    warnings.append(f"Could not remove unverified bundle {bundle.path}: {e}")
                bundle = None

            if bundle:
                logger.info(f"Archiving completed successfully: {bundle.path}")
                self._enter(RunState.PRUNING_ORIGINALS)
                logger.info(f"Deleting {bundle.source_file_count} archived original log(s) from {source}")
                prune = delete_files(bundle.members)
                files_deleted = prune.deleted_count
                if prune.errors:
                    outcome = RunOutcome.PARTIAL
                    errors.append("Deleting original logs failed:\n" + "\n".join(str(e) for e in prune.errors))
                    logger.error(f"Error: {errors[-1]}")

        backups_deleted, prune_warnings = self._prune_bundles(config, archive_dir, started_at)
        warnings += prune_warnings

        return RunRecord(
            timestamp=started_at,
            outcome=outcome,
            archive_path=bundle.path if bundle else None,
            files_archived=bundle.source_file_count if bundle else 0,
            files_deleted=files_deleted,
            backups_deleted=backups_deleted,
            error_detail="\n".join(errors) or None,
            warnings=tuple(warnings),
            duration_seconds=time.monotonic() - start,
        )

    def _prune_bundles(self, config: RetentionConfig, archive_dir: Path, started_at: datetime,
                       dry_run: bool = False) -> Tuple[int, List[str]]:
        """Delete stale bundles. Problems here are warnings, never failures."""
        self._enter(RunState.PRUNING_BUNDLES)
        logger.info(f"Deleting backup archives older than {config.backup_retention_days} days from {archive_dir}")
        try:
            prune = delete_older_than(archive_dir, 1, config.backup_retention_days,
                                      name_pattern=f"*.{config.archive_extension}",
                                      now=started_at.timestamp(), dry_run=dry_run)
        except ScanError as e:
            warning = f"Deleting old backup archives failed: {e}"
            logger.warning(warning)
            return 0, [warning]

        warnings = [f"Deleting old backup archive failed: {e}" for e in prune.errors]
        for warning in warnings:
            logger.warning(warning)
        return prune.deleted_count, warnings

    def _preview(self, config: RetentionConfig, source: Path, archive_dir: Path,
                 started_at: datetime, start: float) -> RunRecord:
        """Dry run: report what a real run would do."""
        self._enter(RunState.SCANNING)
        try:
            scan = find_older_than(source, config.log_retention_days, max_depth=config.max_depth,
                                   exclude=[archive_dir], now=started_at.timestamp())
        except ScanError as e:
            return RunRecord(timestamp=started_at, outcome=RunOutcome.FAILURE, error_detail=str(e),
                             duration_seconds=time.monotonic() - start)

        for candidate in scan.candidates:
            logger.info(f"[dry run] Would archive {candidate.path}")

        backups = 0
        warnings = list(scan.warnings)
        if archive_dir.is_dir():
            backups, prune_warnings = self._prune_bundles(config, archive_dir, started_at, dry_run=True)
            warnings += prune_warnings

        return RunRecord(
            timestamp=started_at,
            outcome=RunOutcome.SUCCESS,
            files_archived=len(scan.candidates),
            files_deleted=len(scan.candidates),
            backups_deleted=backups,
            warnings=tuple(warnings),
            duration_seconds=time.monotonic() - start,
        )

    async def _finish(self, config: RetentionConfig, record: RunRecord,
                      run_log: Optional[RunLog], dry_run: bool = False) -> RunRecord:
        """Notify, log and record metrics for a finished run."""
        if not dry_run:
            self._enter(RunState.NOTIFYING)
            subject, body = build_report(record, config)
            await self.notifier.notify(config.notify_channel, subject, body)

        if run_log is not None:
            try:
                run_log.append(record)
            except OSError as e:
                logger.error(f"Failed to write run log {run_log.path}: {e}")

        self.metrics.observe(record)
        self._enter(RunState.DONE)

        if record.outcome is RunOutcome.FAILURE:
            logger.error(f"Log archiving failed: {record.error_detail}")
        elif record.outcome is RunOutcome.PARTIAL:
            logger.warning(f"Log archiving partially failed: {record.error_detail}")
        else:
            logger.info(f"Log archiving completed: {record.files_archived} archived, "
                        f"{record.backups_deleted} old backup(s) deleted")
        return record

    def get_status(self, config: RetentionConfig) -> Dict[str, Any]:
        """Current bundles and recent runs for a source directory."""
        archive_dir = config.archive_directory
        if archive_dir is None:
            return {'error': 'Log directory is not set'}

        bundles = list_bundles(archive_dir, config.archive_extension)
        total_size = sum(b.stat().st_size for b in bundles)
        run_log = RunLog(archive_dir / config.run_log_file)

        return {
            'archive_directory': str(archive_dir),
            'total_bundles': len(bundles),
            'total_size_mb': total_size / (1024 * 1024),
            'latest_bundle': str(bundles[0]) if bundles else None,
            'bundles': [str(b) for b in bundles],
            'recent_runs': run_log.read_recent(10),
            'config': {
                'log_retention_days': config.log_retention_days,
                'backup_retention_days': config.backup_retention_days,
                'notify_channel': config.notify_channel,
                'archive_extension': config.archive_extension,
            }
        }


def create_archive_manager(notifier: Optional[Notifier] = None,
                           metrics: Optional[RunMetrics] = None) -> ArchiveManager:
    """Create a new ArchiveManager instance."""
    return ArchiveManager(notifier=notifier, metrics=metrics)
