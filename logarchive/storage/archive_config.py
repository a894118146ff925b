"""
Configuration management for the archiving engine.

Settings are layered: built-in defaults, then an optional YAML file, then
command-line overrides. The result is an immutable RetentionConfig. Nothing
is ever written back to disk; scheduled runs carry their settings as
command-line flags.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from logarchive.errors import ConfigError
from logarchive.storage.archive_models import (
    DEFAULT_ARCHIVE_DIR_NAME,
    DEFAULT_ARCHIVE_EXTENSION,
    DEFAULT_ARCHIVE_PREFIX,
    DEFAULT_BACKUP_RETENTION_DAYS,
    DEFAULT_LOG_RETENTION_DAYS,
    DEFAULT_RUN_LOG_FILE,
    RetentionConfig,
)
from logarchive.storage.archive_writer import archive_write_mode

logger = logging.getLogger(__name__)

_NON_NEGATIVE_INT = re.compile(r"^[0-9]+$")


class NotificationSettings(BaseModel):
    """How notifications are delivered."""
    transport: str = "mail"
    mail_command: str = "mail"
    from_email: str = "alerts@mail.wraith-protocol.com"
    api_url: str = "https://api.maildiver.com/v1/messages"
    rate_limit_per_minute: int = 60


class ArchiveSettings(BaseModel):
    """Schema of the optional YAML configuration file."""
    source_directory: Optional[str] = None
    log_retention_days: Optional[Union[int, str]] = None
    backup_retention_days: Optional[Union[int, str]] = None
    notify_channel: Optional[str] = None
    archive_name_prefix: str = DEFAULT_ARCHIVE_PREFIX
    archive_extension: str = DEFAULT_ARCHIVE_EXTENSION
    archive_dir_name: str = DEFAULT_ARCHIVE_DIR_NAME
    run_log_file: str = DEFAULT_RUN_LOG_FILE
    max_depth: int = 1
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


def parse_retention_days(value: Any, default: int, setting: str) -> int:
    """
    Parse a retention value as a non-negative integer.

    Unset values give the default. Anything that is not a non-negative
    integer also gives the default, with a warning; it never raises.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        logger.info(f"{setting} is not set. Using default of {default} days.")
        return default

    if isinstance(value, bool):
        logger.warning(f"'{value}' is not a valid number for {setting}. Using default of {default} days.")
        return default

    if isinstance(value, int):
        if value >= 0:
            return value
        logger.warning(f"'{value}' is not a valid number for {setting}. Using default of {default} days.")
        return default

    text = str(value).strip()
    if _NON_NEGATIVE_INT.match(text):
        return int(text)

    logger.warning(f"'{text}' is not a valid number for {setting}. Using default of {default} days.")
    return default


def validate_config(config: RetentionConfig) -> Path:
    """
    Check a config before any filesystem mutation.

    Returns the resolved source directory. Raises ConfigError for a missing
    or non-directory source, or archive naming that cannot be written.
    """
    if not config.source_directory:
        raise ConfigError("Log directory is not set")

    source = Path(config.source_directory).expanduser()
    if not source.exists():
        raise ConfigError("Log directory not found", path=str(source))
    if not source.is_dir():
        raise ConfigError("Log directory is not a directory", path=str(source))

    if not config.archive_name_prefix or os.sep in config.archive_name_prefix:
        raise ConfigError(f"Invalid archive name prefix '{config.archive_name_prefix}'")
    if not config.archive_dir_name or os.sep in config.archive_dir_name:
        raise ConfigError(f"Invalid archive directory name '{config.archive_dir_name}'")
    if not config.run_log_file or os.sep in config.run_log_file:
        raise ConfigError(f"Invalid run log file name '{config.run_log_file}'")
    if config.max_depth < 1:
        raise ConfigError(f"Scan depth must be at least 1, got {config.max_depth}")

    # raises ConfigError for unsupported extensions
    archive_write_mode(config.archive_extension)

    return source.resolve()


class ArchiveConfigManager:
    """Loads archiving settings from YAML, the environment and overrides."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        load_dotenv()
        self.settings = self._load_settings()

    def _load_settings(self) -> ArchiveSettings:
        """Load settings from the YAML file, if one was given."""
        if self.config_path is None:
            return ArchiveSettings()

        if not self.config_path.exists():
            logger.warning(f"Config file not found at {self.config_path}. Using defaults.")
            return ArchiveSettings()

        try:
            with open(self.config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError("Failed to read config file", detail=str(e), path=str(self.config_path))

        if not isinstance(config_data, dict):
            raise ConfigError("Config file must contain a mapping", path=str(self.config_path))

        try:
            return ArchiveSettings(**config_data)
        except ValueError as e:
            raise ConfigError("Invalid config file", detail=str(e), path=str(self.config_path))

    def build_config(self, overrides: Optional[Dict[str, Any]] = None,
                     default_source: Optional[str] = None) -> RetentionConfig:
        """
        Build a RetentionConfig from file settings and explicit overrides.

        Args:
            overrides: Values from the command line; None entries are ignored.
            default_source: Source directory to use when neither the file nor
                the overrides set one.

        Returns:
            An immutable RetentionConfig.
        """
        values = self.settings.model_dump(exclude={'notifications'})
        for key, value in (overrides or {}).items():
            if value is not None:
                values[key] = value

        if not values.get('source_directory') and default_source:
            values['source_directory'] = default_source

        notify_channel = values.get('notify_channel')
        if isinstance(notify_channel, str):
            notify_channel = notify_channel.strip() or None

        return RetentionConfig(
            source_directory=values.get('source_directory'),
            log_retention_days=parse_retention_days(
                values.get('log_retention_days'), DEFAULT_LOG_RETENTION_DAYS, 'log_retention_days'),
            backup_retention_days=parse_retention_days(
                values.get('backup_retention_days'), DEFAULT_BACKUP_RETENTION_DAYS, 'backup_retention_days'),
            notify_channel=notify_channel,
            archive_name_prefix=values['archive_name_prefix'],
            archive_extension=values['archive_extension'].lstrip('.'),
            archive_dir_name=values['archive_dir_name'],
            run_log_file=values['run_log_file'],
            max_depth=int(values['max_depth']),
        )

    @property
    def notification_settings(self) -> NotificationSettings:
        """Notification settings, with the transport overridable from the environment."""
        settings = self.settings.notifications
        transport = os.getenv("LOGARCHIVE_NOTIFY_TRANSPORT")
        if transport:
            settings = settings.model_copy(update={'transport': transport})
        return settings
