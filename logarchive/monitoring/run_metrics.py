"""
Run metrics for logarchive.

Tracks archiving runs in a dedicated Prometheus registry. Because runs are
short-lived (usually triggered by cron), the registry can be written to a
node_exporter textfile after each run instead of being scraped.
"""

from pathlib import Path
from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest, write_to_textfile

from logarchive.storage.archive_models import RunOutcome, RunRecord

logger = structlog.get_logger(__name__)


class RunMetrics:
    """Prometheus metrics for archiving runs."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize run metrics.

        Args:
            registry: Optional Prometheus registry. A private one is created if None.
        """
        self.registry = registry or CollectorRegistry()

        self.runs_total = Counter(
            'logarchive_runs_total',
            'Total archiving runs',
            ['outcome'],
            registry=self.registry
        )
        self.files_archived_total = Counter(
            'logarchive_files_archived_total',
            'Total files written into bundles',
            registry=self.registry
        )
        self.files_deleted_total = Counter(
            'logarchive_files_deleted_total',
            'Total archived originals deleted',
            registry=self.registry
        )
        self.backups_deleted_total = Counter(
            'logarchive_backups_deleted_total',
            'Total stale bundles deleted',
            registry=self.registry
        )
        self.last_run_timestamp = Gauge(
            'logarchive_last_run_timestamp_seconds',
            'Unix time of the last completed run',
            registry=self.registry
        )
        self.last_run_success = Gauge(
            'logarchive_last_run_success',
            '1 if the last run did not fail, else 0',
            registry=self.registry
        )
        self.run_duration = Histogram(
            'logarchive_run_duration_seconds',
            'Duration of archiving runs',
            buckets=[0.1, 0.5, 1, 5, 15, 60, 300, 900],
            registry=self.registry
        )

        for outcome in RunOutcome:
            self.runs_total.labels(outcome=outcome.value)

    def observe(self, record: RunRecord) -> None:
        """Update metrics from a finished run."""
        self.runs_total.labels(outcome=record.outcome.value).inc()
        self.files_archived_total.inc(record.files_archived)
        self.files_deleted_total.inc(record.files_deleted)
        self.backups_deleted_total.inc(record.backups_deleted)
        self.last_run_timestamp.set(record.timestamp.timestamp())
        self.last_run_success.set(0 if record.outcome is RunOutcome.FAILURE else 1)
        self.run_duration.observe(record.duration_seconds)

    def export(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)

    def write_textfile(self, path) -> None:
        """Write the registry to a node_exporter textfile, atomically."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(path), self.registry)
        logger.debug("Run metrics written", path=str(path))
