"""
Unit tests for the retention pruner.
"""

import os
import shutil
import tempfile
import time
import unittest
from pathlib import Path
from unittest.mock import patch

from logarchive.errors import PruneError, ScanError
from logarchive.storage.age_filter import SECONDS_PER_DAY
from logarchive.storage.retention_pruner import delete_files, delete_older_than


class TestDeleteFiles(unittest.TestCase):
    """Test deleting an explicit list of files."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.root = Path(self.temp_dir)
        self.files = []
        for name in ("a.log", "b.log", "c.log"):
            path = self.root / name
            path.write_text("data\n")
            self.files.append(path)

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def test_deletes_all_files(self):
        result = delete_files(self.files)

        self.assertEqual(result.deleted_count, 3)
        self.assertEqual(result.deleted_paths, self.files)
        self.assertTrue(result.ok)
        for f in self.files:
            self.assertFalse(f.exists())

    def test_second_pass_is_a_no_op(self):
        delete_files(self.files)
        result = delete_files(self.files)

        self.assertEqual(result.deleted_count, 0)
        self.assertEqual(result.errors, [])

    def test_failure_on_one_file_does_not_stop_the_rest(self):
        real_unlink = Path.unlink

        def flaky_unlink(path, *args, **kwargs):
            if path.name == "b.log":
                raise PermissionError(13, "Permission denied")
            return real_unlink(path, *args, **kwargs)

        with patch.object(Path, 'unlink', flaky_unlink):
            result = delete_files(self.files)

        self.assertEqual(result.deleted_count, 2)
        self.assertFalse(result.ok)
        self.assertEqual(len(result.errors), 1)
        self.assertIsInstance(result.errors[0], PruneError)
        self.assertEqual(result.errors[0].path, str(self.root / "b.log"))
        self.assertEqual(result.errors[0].detail, "Permission denied")
        self.assertFalse((self.root / "a.log").exists())
        self.assertTrue((self.root / "b.log").exists())
        self.assertFalse((self.root / "c.log").exists())

    def test_dry_run_keeps_files(self):
        result = delete_files(self.files, dry_run=True)

        self.assertEqual(result.deleted_count, 3)
        for f in self.files:
            self.assertTrue(f.exists())


class TestDeleteOlderThan(unittest.TestCase):
    """Test pruning by age."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.root = Path(self.temp_dir)
        self.now = time.time()

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def _make_file(self, name: str, age_days: float) -> Path:
        path = self.root / name
        path.write_bytes(b"bundle")
        mtime = self.now - age_days * SECONDS_PER_DAY
        os.utime(path, (mtime, mtime))
        return path

    def test_deletes_only_aged_files(self):
        old1 = self._make_file("logs_archive_20240101_000000.tar.gz", 40)
        old2 = self._make_file("logs_archive_20240102_000000.tar.gz", 35)
        recent = self._make_file("logs_archive_20240301_000000.tar.gz", 5)

        result = delete_older_than(self.root, 1, 30, now=self.now)

        self.assertEqual(result.deleted_count, 2)
        self.assertFalse(old1.exists())
        self.assertFalse(old2.exists())
        self.assertTrue(recent.exists())

    def test_name_pattern_limits_deletion(self):
        bundle = self._make_file("logs_archive_20240101_000000.tar.gz", 40)
        run_log = self._make_file("archive_log.txt", 40)

        result = delete_older_than(self.root, 1, 30, name_pattern="*.tar.gz", now=self.now)

        self.assertEqual(result.deleted_count, 1)
        self.assertFalse(bundle.exists())
        self.assertTrue(run_log.exists())

    def test_idempotent(self):
        self._make_file("old.tar.gz", 40)

        first = delete_older_than(self.root, 1, 30, now=self.now)
        second = delete_older_than(self.root, 1, 30, now=self.now)

        self.assertEqual(first.deleted_count, 1)
        self.assertEqual(second.deleted_count, 0)
        self.assertTrue(second.ok)

    def test_missing_root_raises(self):
        with self.assertRaises(ScanError):
            delete_older_than(self.root / "missing", 1, 30)


if __name__ == '__main__':
    unittest.main()
