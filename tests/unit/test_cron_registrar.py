"""
Unit tests for the cron registrar.

Tests idempotent installation, preservation of unrelated crontab lines,
expression validation and the invocation command.
"""

import os
import shlex
import shutil
import subprocess
import tempfile
import unittest
from unittest.mock import patch

from logarchive.errors import ScheduleError
from logarchive.scheduling.cron_registrar import (
    CRON_TRIGGER_ARGUMENT,
    DEFAULT_MARKER,
    CronRegistrar,
    InMemoryCrontab,
    SystemCrontab,
    build_invocation_command,
    line_has_marker,
    validate_cron_expression,
    validate_marker,
)
from logarchive.storage.archive_models import RetentionConfig, ScheduleEntry

UNRELATED = "# backups\n30 1 * * * /usr/local/bin/backup.sh\nMAILTO=root\n"


class TestValidateCronExpression(unittest.TestCase):
    """Test cron expression validation."""

    def test_valid_expressions(self):
        self.assertEqual(validate_cron_expression("0 2 * * 0"), "0 2 * * 0")
        self.assertEqual(validate_cron_expression("  */15   * * * 1-5 "), "*/15 * * * 1-5")
        self.assertEqual(validate_cron_expression("@daily"), "@daily")

    def test_invalid_expressions(self):
        for bad in ("", "0 2 * *", "0 2 * * 0 extra", "@sometimes", "0 2 * * ;rm"):
            with self.assertRaises(ScheduleError):
                validate_cron_expression(bad)


class TestInvocationCommand(unittest.TestCase):
    """Test the command a scheduled run executes."""

    def test_embeds_config_and_marker(self):
        config = RetentionConfig(source_directory="/srv/my logs", log_retention_days=14,
                                 backup_retention_days=60, notify_channel="ops@example.com")

        command = build_invocation_command(config, python="/usr/bin/python3")
        args = shlex.split(command)

        self.assertEqual(args[:4], ["/usr/bin/python3", "-m", "logarchive.cli.main", CRON_TRIGGER_ARGUMENT])
        self.assertEqual(args[args.index("--source-dir") + 1], "/srv/my logs")
        self.assertEqual(args[args.index("--log-retention-days") + 1], "14")
        self.assertEqual(args[args.index("--backup-retention-days") + 1], "60")
        self.assertEqual(args[args.index("--notify") + 1], "ops@example.com")
        self.assertEqual(args[-2:], ["--schedule-marker", DEFAULT_MARKER])

    def test_without_notify_channel(self):
        command = build_invocation_command(RetentionConfig(source_directory="/var/log"))

        self.assertNotIn("--notify", shlex.split(command))

    def test_relative_source_directory_is_made_absolute(self):
        temp_dir = tempfile.mkdtemp()
        previous = os.getcwd()
        try:
            os.chdir(temp_dir)
            os.mkdir("logs")
            command = build_invocation_command(RetentionConfig(source_directory="logs"))
        finally:
            os.chdir(previous)
            shutil.rmtree(temp_dir)

        args = shlex.split(command)
        source = args[args.index("--source-dir") + 1]
        self.assertTrue(os.path.isabs(source))
        self.assertEqual(source, os.path.join(os.path.realpath(temp_dir), "logs"))

    def test_home_relative_source_directory_is_expanded(self):
        with patch.dict(os.environ, {"HOME": "/home/ops"}):
            command = build_invocation_command(RetentionConfig(source_directory="~/logs"))

        args = shlex.split(command)
        self.assertFalse(args[args.index("--source-dir") + 1].startswith("~"))

    def test_marker_that_needs_quoting_is_rejected(self):
        with self.assertRaises(ScheduleError):
            build_invocation_command(RetentionConfig(source_directory="/var/log"), marker="nightly logs")

    def test_percent_is_escaped_for_cron(self):
        entry = ScheduleEntry("0 2 * * *", "run --prefix logs_%Y", DEFAULT_MARKER)

        self.assertEqual(entry.to_line(), "0 2 * * * run --prefix logs_\\%Y")


class TestCronRegistrar(unittest.TestCase):
    """Test installing and removing the managed entry."""

    def setUp(self):
        """Set up test fixtures."""
        self.crontab = InMemoryCrontab(UNRELATED)
        self.registrar = CronRegistrar(self.crontab)
        self.command = build_invocation_command(RetentionConfig(source_directory="/var/log"),
                                                python="/usr/bin/python3")

    def test_install_appends_entry_and_keeps_other_lines(self):
        entry = self.registrar.install_schedule("0 2 * * 0", self.command)

        lines = self.crontab.content.splitlines()
        self.assertEqual(lines[:3], UNRELATED.splitlines())
        self.assertEqual(lines[3], f"0 2 * * 0 {self.command}")
        self.assertEqual(entry.marker, DEFAULT_MARKER)
        self.assertTrue(self.crontab.content.endswith("\n"))

    def test_registering_twice_leaves_one_entry(self):
        self.registrar.install_schedule("0 2 * * 0", self.command)
        self.registrar.install_schedule("0 3 * * *", self.command)

        managed = [line for line in self.crontab.content.splitlines() if line_has_marker(line, DEFAULT_MARKER)]
        self.assertEqual(managed, [f"0 3 * * * {self.command}"])
        self.assertEqual(len(self.crontab.content.splitlines()), 4)

    def test_marker_is_appended_when_missing(self):
        entry = self.registrar.install_schedule("@weekly", "/usr/local/bin/archive", marker="nightly-logs")

        self.assertEqual(entry.invocation_command, "/usr/local/bin/archive nightly-logs")
        self.assertEqual(self.registrar.find_schedule("nightly-logs"), "@weekly /usr/local/bin/archive nightly-logs")

    def test_invalid_expression_leaves_crontab_untouched(self):
        with self.assertRaises(ScheduleError):
            self.registrar.install_schedule("every sunday", self.command)

        self.assertEqual(self.crontab.content, UNRELATED)
        self.assertEqual(self.crontab.writes, 0)

    def test_commented_marker_lines_are_not_managed(self):
        crontab = InMemoryCrontab(f"# 0 1 * * * old {DEFAULT_MARKER}\n")
        registrar = CronRegistrar(crontab)

        self.assertIsNone(registrar.find_schedule())
        self.assertFalse(registrar.remove_schedule())

    def test_remove_schedule(self):
        self.registrar.install_schedule("0 2 * * 0", self.command)

        self.assertTrue(self.registrar.remove_schedule())
        self.assertEqual(self.crontab.content, UNRELATED)
        self.assertIsNone(self.registrar.find_schedule())

    def test_remove_without_entry(self):
        self.assertFalse(self.registrar.remove_schedule())
        self.assertEqual(self.crontab.writes, 0)

    def test_other_markers_are_independent(self):
        self.registrar.install_schedule("0 2 * * 0", self.command)
        self.registrar.install_schedule("0 4 * * 0", "/usr/local/bin/other", marker="other-job")

        self.assertIsNotNone(self.registrar.find_schedule(DEFAULT_MARKER))
        self.assertIsNotNone(self.registrar.find_schedule("other-job"))

    def test_marker_charset(self):
        self.assertEqual(validate_marker("nightly-logs.v2_a"), "nightly-logs.v2_a")
        for bad in ("", "a$b", "two words", "it's", "tab\there"):
            with self.assertRaises(ScheduleError):
                validate_marker(bad)

    def test_install_rejects_marker_that_cannot_be_found_again(self):
        with self.assertRaises(ScheduleError):
            self.registrar.install_schedule("0 2 * * 0", "/usr/local/bin/archive", marker="a$b")

        self.assertEqual(self.crontab.content, UNRELATED)
        self.assertEqual(self.crontab.writes, 0)

    def test_remove_rejects_invalid_marker(self):
        with self.assertRaises(ScheduleError):
            self.registrar.remove_schedule("bad marker")

        self.assertEqual(self.crontab.writes, 0)


class TestSystemCrontab(unittest.TestCase):
    """Test the crontab command backend."""

    def _completed(self, returncode=0, stdout="", stderr=""):
        return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)

    @patch('logarchive.scheduling.cron_registrar.subprocess.run')
    def test_no_crontab_reads_as_empty(self, mock_run):
        mock_run.return_value = self._completed(1, stderr="no crontab for user\n")

        self.assertEqual(SystemCrontab().read(), "")

    @patch('logarchive.scheduling.cron_registrar.subprocess.run')
    def test_read_failure_raises(self, mock_run):
        mock_run.return_value = self._completed(1, stderr="crontab: permission denied\n")

        with self.assertRaises(ScheduleError) as ctx:
            SystemCrontab().read()

        self.assertEqual(ctx.exception.detail, "crontab: permission denied")

    @patch('logarchive.scheduling.cron_registrar.subprocess.run')
    def test_write_pipes_content(self, mock_run):
        mock_run.return_value = self._completed()

        SystemCrontab().write("0 2 * * 0 job\n")

        args, kwargs = mock_run.call_args
        self.assertEqual(args[0], ["crontab", "-"])
        self.assertEqual(kwargs['input'], "0 2 * * 0 job\n")

    @patch('logarchive.scheduling.cron_registrar.subprocess.run', side_effect=FileNotFoundError())
    def test_missing_crontab_command(self, mock_run):
        with self.assertRaises(ScheduleError):
            SystemCrontab().read()


if __name__ == '__main__':
    unittest.main()
