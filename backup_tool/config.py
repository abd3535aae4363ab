"""Configuration management for the backup tool."""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def _split_csv(v):
    """Accept either a comma-separated string or a YAML list."""
    if v is None:
        return []
    if isinstance(v, str):
        return [part.strip() for part in v.split(",") if part.strip()]
    if isinstance(v, (list, tuple)):
        return [str(part).strip() for part in v if str(part).strip()]
    return v


class CronConfig(BaseModel):
    """The ``cron`` section: when the backup job runs."""

    schedule: Optional[str] = Field(
        default=None,
        description="Cron expression: 'minute hour day-of-month month day-of-week'",
    )
    daily_time: Optional[str] = Field(
        default=None, description="Time of day in HH:MM, used when schedule is unset"
    )
    command: Optional[str] = Field(
        default=None,
        description="Command installed in the crontab (defaults to this tool's backup command)",
    )

    @field_validator("schedule", "command", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("daily_time", mode="before")
    @classmethod
    def normalize_daily_time(cls, v):
        """Undo YAML 1.1 sexagesimal parsing (``9:30`` loads as 570)."""
        if isinstance(v, bool):
            raise ValueError("daily_time must be a HH:MM string")
        if isinstance(v, int):
            return f"{v // 60:02d}:{v % 60:02d}"
        if isinstance(v, str) and not v.strip():
            return None
        return v


class BackupConfig(BaseModel):
    """The ``backup`` section: what is copied where, and who hears about it."""

    sources: List[str] = Field(
        default_factory=list, description="Ordered source directories"
    )
    target: str = Field(default="", description="Directory receiving every source")
    recipients: List[str] = Field(
        default_factory=list, description="Addresses receiving the run report"
    )

    @field_validator("sources", "recipients", mode="before")
    @classmethod
    def split_lists(cls, v):
        return _split_csv(v)

    @field_validator("target", mode="before")
    @classmethod
    def strip_target(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator("recipients")
    @classmethod
    def validate_email_list(cls, v: List[str]) -> List[str]:
        """Validate email addresses."""
        for email in v:
            if not EMAIL_PATTERN.match(email):
                raise ValueError(f"Invalid email format: {email}")
        return v


class AppConfig(BaseModel):
    """Main application configuration."""

    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_file: str = Field(
        default="log/backup_tool.log",
        description="Path to log file relative to the working directory",
    )
    tool_name: str = Field(
        default="backup_tool", description="Name used in mail subjects"
    )
    lock_file: str = Field(
        default="/tmp/backup_tool.lock", description="Single-instance lock file"
    )
    pid_file: str = Field(
        default="backup_tool.pid",
        description="Marker holding the PID of a running backup",
    )
    report_dir: str = Field(default=".", description="Directory for run reports")
    report_name: str = Field(
        default="backup_report_%Y-%m-%d.log",
        description="strftime pattern for the daily report file name",
    )
    fstab_file: str = Field(default="/etc/fstab")
    mounts_file: str = Field(default="/proc/self/mounts")
    mail_command: str = Field(default="mutt")
    sync_command: str = Field(default="rsync")
    sync_options: List[str] = Field(default_factory=lambda: ["-a", "-v"])
    cron: Optional[CronConfig] = None
    backup: Optional[BackupConfig] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v_upper

    @field_validator("sync_options", mode="before")
    @classmethod
    def split_sync_options(cls, v):
        if isinstance(v, str):
            return v.split()
        return v

    @field_validator("cron", "backup", mode="before")
    @classmethod
    def empty_section(cls, v):
        # A bare "backup:" line loads as None; keep it distinct from a missing section
        return {} if v is None else v

    @property
    def recipients(self) -> List[str]:
        return self.backup.recipients if self.backup else []

    def report_path(self, when) -> Path:
        """Path of the report file for the day of ``when``."""
        return Path(self.report_dir) / when.strftime(self.report_name)


def load_config(config_path: str = "config.yaml") -> AppConfig:
    """Load and validate configuration from YAML file."""
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            raise ValueError("Configuration file is empty")

        return AppConfig(**config_data)

    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML format in config file: {e}")
    except Exception as e:
        raise ValueError(f"Configuration validation error: {e}")
