"""Crontab installation for the periodic backup job."""

import logging
import re
from datetime import datetime
from typing import Callable, List, Optional

from croniter import croniter

from .config import AppConfig, CronConfig
from .results import OperationResult
from .system import CommandResult, run_command

DAILY_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{1,2})$")

logger = logging.getLogger(__name__)


class CronScheduler:
    """Computes the job's cron expression and keeps one crontab entry for it."""

    def __init__(
        self,
        config: AppConfig,
        command: str,
        runner: Callable[..., CommandResult] = run_command,
        match: Optional[str] = None,
    ):
        self.config = config
        override = config.cron.command if config.cron else None
        self.command = override or command
        # Identifies lines installed earlier, whichever directory they cd into
        self.match = override or match or self.command
        self.runner = runner
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def compute_schedule(cron: Optional[CronConfig]) -> str:
        """
        Work out the cron expression for the backup job.

        ``schedule`` is used verbatim and wins over ``daily_time``;
        ``daily_time`` (HH:MM) becomes a once-a-day expression.

        Raises:
            ValueError: if neither is set, or the value is malformed
        """
        if cron is None:
            raise ValueError("Configuration has no 'cron' section")

        if cron.schedule:
            if cron.daily_time:
                logger.warning(
                    f"Both cron.schedule and cron.daily_time are set; "
                    f"using schedule '{cron.schedule}'"
                )
            schedule = cron.schedule.strip()
            if len(schedule.split()) != 5:
                raise ValueError(
                    "Schedule must have 5 fields: 'minute hour day-of-month month day-of-week'"
                )
            try:
                croniter(schedule)
            except Exception as e:
                raise ValueError(f"Invalid cron schedule format: {e}")
            return schedule

        if cron.daily_time:
            match = DAILY_TIME_PATTERN.match(cron.daily_time.strip())
            if not match:
                raise ValueError(
                    f"Invalid daily_time format '{cron.daily_time}', expected HH:MM"
                )
            hour, minute = int(match.group(1)), int(match.group(2))
            if not (0 <= hour <= 23 and 0 <= minute <= 59):
                raise ValueError(
                    f"Invalid daily_time format '{cron.daily_time}', "
                    f"hour must be 0-23 and minute 0-59"
                )
            return f"{minute} {hour} * * *"

        raise ValueError("Neither cron.schedule nor cron.daily_time is set")

    @staticmethod
    def next_run_time(schedule: str, current_time: Optional[datetime] = None) -> datetime:
        """Get the next time the schedule fires."""
        if current_time is None:
            current_time = datetime.now()
        return croniter(schedule, current_time).get_next(datetime)

    def read_crontab(self) -> List[str]:
        """Current crontab lines; a missing crontab reads as empty."""
        result = self.runner(["crontab", "-l"])
        if not result.ok:
            self.logger.debug(f"crontab -l returned {result.returncode}, treating as empty")
            return []
        return [line for line in result.output.splitlines() if line.strip()]

    def build_crontab(self, current: List[str], schedule: str) -> List[str]:
        """Drop this tool's previous entries and append the new one."""
        kept = [
            line
            for line in current
            if line.lstrip().startswith("#") or self.match not in line
        ]
        removed = len(current) - len(kept)
        if removed:
            self.logger.info(f"Replacing {removed} existing crontab line(s)")
        kept.append(f"{schedule} {self.command}")
        return kept

    def install_schedule(self) -> OperationResult:
        try:
            schedule = self.compute_schedule(self.config.cron)
        except ValueError as e:
            self.logger.error(str(e))
            return OperationResult.failure(str(e))

        lines = self.build_crontab(self.read_crontab(), schedule)
        result = self.runner(["crontab", "-"], input_text="\n".join(lines) + "\n")
        if not result.ok:
            self.logger.error(f"Failed to install crontab: {result.output.strip()}")
            return OperationResult.failure(
                result.output.strip(), exit_code=result.returncode
            )

        self.logger.info(f"Installed crontab entry: {schedule} {self.command}")
        self.logger.info(
            f"Next backup run: {self.next_run_time(schedule).strftime('%Y-%m-%d %H:%M')}"
        )
        return OperationResult.success(f"{schedule} {self.command}")
