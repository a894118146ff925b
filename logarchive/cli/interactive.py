"""
Interactive menu for logarchive.

The menu is an explicit wizard: setting the log directory leads on to the
retention prompts and then to an offer to run, and setting the notification
channel leads on to cron setup. Every action yields a new RetentionConfig
rather than editing shared state.
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from logarchive.errors import ScheduleError
from logarchive.scheduling.cron_registrar import DEFAULT_MARKER, CronRegistrar, build_invocation_command
from logarchive.storage.archive_config import parse_retention_days
from logarchive.storage.archive_manager import ArchiveManager
from logarchive.storage.archive_models import (
    DEFAULT_BACKUP_RETENTION_DAYS,
    DEFAULT_LOG_RETENTION_DAYS,
    DEFAULT_SOURCE_DIRECTORY,
    RetentionConfig,
    RunOutcome,
    RunRecord,
)


class WizardState(Enum):
    """States of the interactive session."""
    MENU = "menu"
    AWAIT_DIRECTORY = "await_directory"
    AWAIT_LOG_RETENTION = "await_log_retention"
    AWAIT_BACKUP_RETENTION = "await_backup_retention"
    READY_TO_RUN = "ready_to_run"
    RUNNING = "running"
    AWAIT_NOTIFY_CHANNEL = "await_notify_channel"
    AWAIT_SCHEDULE = "await_schedule"
    EXIT = "exit"


MENU_OPTIONS = {
    '1': WizardState.AWAIT_DIRECTORY,
    '2': WizardState.AWAIT_LOG_RETENTION,
    '3': WizardState.AWAIT_BACKUP_RETENTION,
    '4': WizardState.RUNNING,
    '5': WizardState.AWAIT_NOTIFY_CHANNEL,
    '6': WizardState.AWAIT_SCHEDULE,
    '7': WizardState.EXIT,
}


def print_run_summary(record: RunRecord, output: Callable[[str], None] = print):
    """Print a human-readable summary of a run."""
    if record.outcome is RunOutcome.SUCCESS:
        if record.archive_path:
            output(f"✅ Archiving completed successfully: {record.archive_path}")
        else:
            output("✅ No logs needed archiving")
    elif record.outcome is RunOutcome.PARTIAL:
        output(f"⚠️ Logs archived in {record.archive_path}, but cleanup did not finish")
    else:
        output("❌ Log archiving failed")

    output(f"   Files archived: {record.files_archived}")
    output(f"   Original logs deleted: {record.files_deleted}")
    output(f"   Old backups deleted: {record.backups_deleted}")
    if record.error_detail:
        output(f"   Error details: {record.error_detail}")
    for warning in record.warnings:
        output(f"   Warning: {warning}")


class InteractiveSession:
    """Menu-driven session holding the current config in memory only."""

    def __init__(self, manager: ArchiveManager, registrar: Optional[CronRegistrar] = None,
                 config: Optional[RetentionConfig] = None, marker: str = DEFAULT_MARKER,
                 input_func: Callable[[str], str] = input, output: Callable[[str], None] = print):
        self.manager = manager
        self.registrar = registrar or CronRegistrar()
        self.config = config or RetentionConfig()
        self.marker = marker
        self.input = input_func
        self.output = output
        self.state = WizardState.MENU
        self.last_record: Optional[RunRecord] = None

    def prompt(self, question: str, default: str = "") -> str:
        answer = self.input(f"{question} [{default}]: ").strip()
        return answer or default

    def confirm(self, question: str) -> bool:
        return self.input(f"{question} (y/n) ").strip().lower() in ('y', 'yes')

    def show_menu(self):
        config = self.config
        self.output("")
        self.output("--- Log Archive Tool ---")
        self.output(f"1. Specify Log Directory [Current: {config.source_directory or 'Not Set'}]")
        self.output(f"2. Specify Number of Days to Keep Logs [Current: {config.log_retention_days}]")
        self.output(f"3. Specify Number of Days to Keep Backup Archives [Current: {config.backup_retention_days}]")
        self.output("4. Run Log Archiving Process")
        self.output(f"5. Set Email Recipient [Current: {config.notify_channel or 'Not Set'}]")
        self.output("6. Setup Cron Job")
        self.output("7. Exit")
        self.output("")

    def run(self) -> Optional[RunRecord]:
        """Drive the wizard until the user exits. Returns the last run's record."""
        handlers = {
            WizardState.MENU: self._handle_menu,
            WizardState.AWAIT_DIRECTORY: self._handle_directory,
            WizardState.AWAIT_LOG_RETENTION: self._handle_log_retention,
            WizardState.AWAIT_BACKUP_RETENTION: self._handle_backup_retention,
            WizardState.READY_TO_RUN: self._handle_ready_to_run,
            WizardState.RUNNING: self._handle_running,
            WizardState.AWAIT_NOTIFY_CHANNEL: self._handle_notify_channel,
            WizardState.AWAIT_SCHEDULE: self._handle_schedule,
        }

        while self.state is not WizardState.EXIT:
            try:
                self.state = handlers[self.state]()
            except (EOFError, KeyboardInterrupt):
                self.output("")
                self.state = WizardState.EXIT

        self.output("Exiting...")
        return self.last_record

    def _handle_menu(self) -> WizardState:
        self.show_menu()
        choice = self.input("Choose an option (1-7): ").strip()
        state = MENU_OPTIONS.get(choice)
        if state is None:
            self.output("Invalid option. Please choose a number between 1 and 7.")
            return WizardState.MENU
        return state

    def _handle_directory(self) -> WizardState:
        default = self.config.source_directory or DEFAULT_SOURCE_DIRECTORY
        answer = self.prompt("Enter the log directory", default)
        path = Path(answer).expanduser()
        if not path.is_dir():
            self.output(f"Error: Directory '{answer}' not found.")
            self.config = self.config.with_changes(source_directory=None)
            return WizardState.MENU

        directory = str(path.resolve())
        self.config = self.config.with_changes(source_directory=directory)
        self.output(f"Log directory set to {directory}")
        return WizardState.AWAIT_LOG_RETENTION

    def _handle_log_retention(self) -> WizardState:
        answer = self.prompt("How many days of logs do you want to keep?", str(self.config.log_retention_days))
        days = parse_retention_days(answer, DEFAULT_LOG_RETENTION_DAYS, 'log_retention_days')
        if not (answer.isascii() and answer.isdigit()):
            self.output(f"Warning: '{answer}' is not a valid number. Using default of {days}.")
        self.config = self.config.with_changes(log_retention_days=days)
        self.output(f"Logs older than {days} days will be archived and deleted.")
        return WizardState.AWAIT_BACKUP_RETENTION

    def _handle_backup_retention(self) -> WizardState:
        answer = self.prompt("How many days of backup archives do you want to keep?",
                             str(self.config.backup_retention_days))
        days = parse_retention_days(answer, DEFAULT_BACKUP_RETENTION_DAYS, 'backup_retention_days')
        if not (answer.isascii() and answer.isdigit()):
            self.output(f"Warning: '{answer}' is not a valid number. Using default of {days}.")
        self.config = self.config.with_changes(backup_retention_days=days)
        self.output(f"Backup archives older than {days} days will be deleted.")
        return WizardState.READY_TO_RUN

    def _handle_ready_to_run(self) -> WizardState:
        if self.confirm("Run the log archiving process now?"):
            return WizardState.RUNNING
        return WizardState.MENU

    def _handle_running(self) -> WizardState:
        record = asyncio.run(self.manager.run(self.config))
        self.last_record = record
        print_run_summary(record, self.output)
        return WizardState.MENU

    def _handle_notify_channel(self) -> WizardState:
        channel = self.prompt("Enter the email address to send notifications to",
                              self.config.notify_channel or "")
        if channel:
            self.config = self.config.with_changes(notify_channel=channel)
            self.output(f"Email recipient set to {channel}")
        else:
            self.config = self.config.with_changes(notify_channel=None)
            self.output("Email recipient cleared. Notifications will be skipped.")
        return WizardState.AWAIT_SCHEDULE

    def _handle_schedule(self) -> WizardState:
        if not self.confirm("Do you want to add this script to cron for automated execution?"):
            self.output("Cron job setup skipped.")
            return WizardState.MENU

        if not self.config.source_directory:
            self.output("Error: Log directory is not set. Please set it first (Option 1).")
            return WizardState.MENU

        expression = self.input("Enter the desired cron schedule (e.g., 0 2 * * 0 for weekly at 2 AM): ").strip()
        try:
            command = build_invocation_command(self.config, self.marker)
            entry = self.registrar.install_schedule(expression, command, self.marker)
        except ScheduleError as e:
            self.output(f"Error: {e}. Cron job not added.")
            return WizardState.MENU

        self.output(f"Cron job added: {entry.to_line()}")
        self.output("The scheduled run uses the settings shown above; re-run this option after changing them.")
        return WizardState.MENU
