"""
Unit tests for the run log and run lock.
"""

import shutil
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from logarchive.errors import RunLockedError
from logarchive.storage.archive_models import RunOutcome, RunRecord
from logarchive.storage.run_log import LOCK_FILE_NAME, RunLock, RunLog


class TestRunRecordRendering(unittest.TestCase):
    """Test rendering records as log lines."""

    def test_success_line(self):
        record = RunRecord(
            timestamp=datetime(2024, 3, 5, 2, 0, 9),
            outcome=RunOutcome.SUCCESS,
            archive_path=Path("/var/log/archive/logs_archive_20240305_020009.tar.gz"),
            files_archived=3,
            files_deleted=3,
            backups_deleted=1,
            duration_seconds=0.5,
        )

        self.assertEqual(
            record.to_log_line(),
            "2024-03-05 02:00:09 outcome=success "
            "archive=/var/log/archive/logs_archive_20240305_020009.tar.gz "
            "files_archived=3 files_deleted=3 backups_deleted=1 warnings=0 duration=0.50s"
        )
        self.assertEqual(record.exit_code, 0)

    def test_multiline_error_stays_on_one_line(self):
        record = RunRecord(
            timestamp=datetime(2024, 3, 5, 2, 0, 9),
            outcome=RunOutcome.FAILURE,
            error_detail='first "problem"\nsecond problem\n',
        )

        line = record.to_log_line()

        self.assertNotIn("\n", line)
        self.assertIn("archive=-", line)
        self.assertTrue(line.endswith("error=\"first 'problem' | second problem\""))
        self.assertEqual(record.exit_code, 1)

    def test_partial_exits_zero(self):
        record = RunRecord(timestamp=datetime.now(), outcome=RunOutcome.PARTIAL)

        self.assertEqual(record.exit_code, 0)


class TestRunLog(unittest.TestCase):
    """Test the append-only run log."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.log_path = Path(self.temp_dir) / "archive_log.txt"
        self.run_log = RunLog(self.log_path)

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def _record(self, day: int, outcome=RunOutcome.SUCCESS) -> RunRecord:
        return RunRecord(timestamp=datetime(2024, 3, day, 2, 0, 0), outcome=outcome)

    def test_appends_one_line_per_record(self):
        self.run_log.append(self._record(1))
        self.run_log.append(self._record(2, RunOutcome.FAILURE))

        lines = self.log_path.read_text().splitlines()

        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[0].startswith("2024-03-01 02:00:00 outcome=success"))
        self.assertTrue(lines[1].startswith("2024-03-02 02:00:00 outcome=failure"))

    def test_existing_lines_are_preserved(self):
        self.log_path.write_text("earlier run\n")

        self.run_log.append(self._record(1))

        self.assertEqual(self.log_path.read_text().splitlines()[0], "earlier run")

    def test_read_recent_returns_tail(self):
        for day in range(1, 6):
            self.run_log.append(self._record(day))

        recent = self.run_log.read_recent(2)

        self.assertEqual(len(recent), 2)
        self.assertTrue(recent[0].startswith("2024-03-04"))
        self.assertTrue(recent[1].startswith("2024-03-05"))

    def test_read_recent_missing_file(self):
        self.assertEqual(self.run_log.read_recent(), [])


class TestRunLock(unittest.TestCase):
    """Test the per-directory run lock."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def test_second_lock_fails_fast(self):
        first = RunLock(self.temp_dir)
        second = RunLock(self.temp_dir)

        with first:
            self.assertTrue(first.held)
            with self.assertRaises(RunLockedError):
                second.acquire()
            self.assertFalse(second.held)

        self.assertFalse(first.held)

    def test_lock_can_be_reacquired_after_release(self):
        lock = RunLock(self.temp_dir)
        lock.acquire()
        lock.release()

        with RunLock(self.temp_dir) as again:
            self.assertTrue(again.held)

    def test_lock_file_location(self):
        lock = RunLock(self.temp_dir)

        self.assertEqual(lock.path, Path(self.temp_dir) / LOCK_FILE_NAME)

    def test_release_without_acquire_is_harmless(self):
        RunLock(self.temp_dir).release()


if __name__ == '__main__':
    unittest.main()
