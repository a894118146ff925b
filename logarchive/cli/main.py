"""
Command-line interface for logarchive.

Without a command the interactive menu starts. The fixed
``auto_archive_cron_trigger`` command runs the pipeline once without any
prompts; it is what installed cron entries invoke.
"""

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

import structlog

from logarchive.cli.interactive import InteractiveSession, print_run_summary
from logarchive.errors import ConfigError, ScheduleError
from logarchive.monitoring.notifications import create_notifier
from logarchive.monitoring.run_metrics import RunMetrics
from logarchive.scheduling.cron_registrar import (
    CRON_TRIGGER_ARGUMENT,
    DEFAULT_MARKER,
    CronRegistrar,
    build_invocation_command,
)
from logarchive.storage.archive_config import ArchiveConfigManager
from logarchive.storage.archive_manager import create_archive_manager
from logarchive.storage.archive_models import DEFAULT_SOURCE_DIRECTORY
from logarchive.storage.run_log import RunLog


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))


def _overrides(args) -> Dict[str, Any]:
    return {
        'source_directory': getattr(args, 'source_dir', None),
        'log_retention_days': getattr(args, 'log_retention_days', None),
        'backup_retention_days': getattr(args, 'backup_retention_days', None),
        'notify_channel': getattr(args, 'notify', None),
        'archive_name_prefix': getattr(args, 'prefix', None),
        'archive_extension': getattr(args, 'extension', None),
    }


def load_config(args, default_source: Optional[str] = None):
    """Build the run configuration and a matching manager from parsed arguments."""
    config_manager = ArchiveConfigManager(getattr(args, 'config', None))
    config = config_manager.build_config(_overrides(args), default_source=default_source)
    notifier = create_notifier(**config_manager.notification_settings.model_dump())
    return config, notifier


async def run_archive(args, default_source: Optional[str] = None) -> int:
    """Run the archiving pipeline once."""
    config, notifier = load_config(args, default_source)
    metrics = RunMetrics()
    manager = create_archive_manager(notifier=notifier, metrics=metrics)

    dry_run = getattr(args, 'dry_run', False)
    if dry_run:
        print(f"Previewing log archiving for {config.source_directory} (dry run)...")

    record = await manager.run(config, dry_run=dry_run)
    print_run_summary(record)

    metrics_file = getattr(args, 'metrics_file', None)
    if metrics_file and not dry_run:
        try:
            metrics.write_textfile(metrics_file)
        except OSError as e:
            print(f"Warning: could not write metrics to {metrics_file}: {e}")

    return record.exit_code


def schedule(args) -> int:
    """Install or update the cron entry."""
    config, _ = load_config(args)
    if not config.source_directory:
        print("Error: --source-dir is required to schedule archiving")
        return 1

    marker = getattr(args, 'schedule_marker', None) or DEFAULT_MARKER
    command = build_invocation_command(config, marker)
    entry = CronRegistrar().install_schedule(args.cron, command, marker)
    print(f"Cron job added: {entry.to_line()}")
    return 0


def unschedule(args) -> int:
    """Remove the cron entry."""
    marker = getattr(args, 'schedule_marker', None) or DEFAULT_MARKER
    if CronRegistrar().remove_schedule(marker):
        print(f"Cron job removed ({marker})")
    else:
        print(f"No cron job found for {marker}")
    return 0


def show_history(args) -> int:
    """Show the most recent run log lines."""
    config, _ = load_config(args)
    if config.run_log_path is None:
        print("Error: --source-dir is required to show run history")
        return 1

    lines = RunLog(config.run_log_path).read_recent(args.limit)
    if not lines:
        print(f"No runs recorded in {config.run_log_path}")
        return 0

    print(f"Recent runs ({config.run_log_path})")
    print("=" * 40)
    for line in lines:
        print(line)
    return 0


def show_bundles(args) -> int:
    """List bundles in the archive directory, newest first."""
    config, _ = load_config(args)
    manager = create_archive_manager()
    status = manager.get_status(config)
    if 'error' in status:
        print(f"Error: {status['error']}")
        return 1

    print(f"Archive directory: {status['archive_directory']}")
    print(f"Total bundles: {status['total_bundles']} ({status['total_size_mb']:.2f} MB)")
    for bundle in status['bundles']:
        print(f"  {bundle}")
    return 0


def interactive(args) -> int:
    """Start the interactive menu."""
    config, notifier = load_config(args)
    marker = getattr(args, 'schedule_marker', None) or DEFAULT_MARKER
    session = InteractiveSession(
        manager=create_archive_manager(notifier=notifier),
        config=config,
        marker=marker,
    )
    record = session.run()
    return record.exit_code if record else 0


def _common_arguments() -> argparse.ArgumentParser:
    # SUPPRESS keeps subcommand defaults from clobbering values given before the command
    common = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
    common.add_argument('--config', help='Path to YAML configuration file')
    common.add_argument('--source-dir', help='Directory containing the logs to archive')
    common.add_argument('--log-retention-days',
                        help='Archive and delete logs older than this many days (default: 7)')
    common.add_argument('--backup-retention-days',
                        help='Delete bundles older than this many days (default: 30)')
    common.add_argument('--notify', help='Email address to notify after each run')
    common.add_argument('--prefix', help='Bundle file name prefix (default: logs_archive)')
    common.add_argument('--extension', help='Bundle format/extension (default: tar.gz)')
    common.add_argument('--metrics-file', help='Write Prometheus metrics to this textfile after a run')
    common.add_argument('--schedule-marker', help='Token identifying the managed cron entry')
    common.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_arguments()
    parser = argparse.ArgumentParser(
        description="Log archiving with retention policies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[common],
        epilog="""
Examples:
  # Interactive menu
  logarchive

  # Archive logs older than 14 days, keep bundles for 60 days
  logarchive run --source-dir /var/log/myapp --log-retention-days 14 --backup-retention-days 60

  # Preview without touching anything
  logarchive run --source-dir /var/log/myapp --dry-run

  # Run weekly at 2 AM on Sunday
  logarchive schedule "0 2 * * 0" --source-dir /var/log/myapp --notify ops@example.com
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('interactive', parents=[common], help='Start the interactive menu (default)')
    subparsers.add_parser(CRON_TRIGGER_ARGUMENT, parents=[common],
                          help='Run once without prompts (used by cron)')

    run_parser = subparsers.add_parser('run', parents=[common], help='Run the archiving pipeline once')
    run_parser.add_argument('--dry-run', action='store_true', default=False,
                            help='Show what would be archived and deleted without changing anything')

    schedule_parser = subparsers.add_parser('schedule', parents=[common], help='Install or update the cron entry')
    schedule_parser.add_argument('cron', help='Cron expression, e.g. "0 2 * * 0"')

    subparsers.add_parser('unschedule', parents=[common], help='Remove the cron entry')

    history_parser = subparsers.add_parser('history', parents=[common], help='Show recent runs')
    history_parser.add_argument('--limit', type=int, default=20, help='Number of runs to show')

    subparsers.add_parser('bundles', parents=[common], help='List archive bundles')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(getattr(args, 'verbose', False))

    command = args.command or 'interactive'
    try:
        if command == CRON_TRIGGER_ARGUMENT:
            return asyncio.run(run_archive(args, default_source=DEFAULT_SOURCE_DIRECTORY))
        elif command == 'run':
            return asyncio.run(run_archive(args))
        elif command == 'schedule':
            return schedule(args)
        elif command == 'unschedule':
            return unschedule(args)
        elif command == 'history':
            return show_history(args)
        elif command == 'bundles':
            return show_bundles(args)
        elif command == 'interactive':
            return interactive(args)
        else:
            print(f"Unknown command: {command}")
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 1
    except (ConfigError, ScheduleError) as e:
        print(f"Error: {e}")
        return 1


def cli():
    sys.exit(main())


if __name__ == '__main__':
    sys.exit(main())
