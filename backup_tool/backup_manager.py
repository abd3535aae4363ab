"""Core backup functionality: one rsync run per configured source."""

import logging
from datetime import datetime
from functools import reduce
from operator import or_
from pathlib import Path
from typing import Callable, List, Optional

from .config import AppConfig
from .results import OperationResult, Status
from .system import CommandResult, find_missing_tools, run_command

SEPARATOR = "=" * 72


class SourceOutcome:
    """Result of syncing a single source."""

    def __init__(
        self,
        source: str,
        target: str,
        returncode: int,
        output: str = "",
        execution_time: float = 0.0,
    ):
        self.source = source
        self.target = target
        self.returncode = returncode
        self.output = output
        self.execution_time = execution_time

    @property
    def success(self) -> bool:
        return self.returncode == 0


class BackupSummary:
    """Aggregate of every source synced during one run."""

    def __init__(self, results: Optional[List[SourceOutcome]] = None):
        self.results = results or []

    @property
    def exit_code(self) -> int:
        """Bitwise OR of all per-source statuses; zero only if all succeeded."""
        return reduce(or_, (r.returncode for r in self.results), 0)

    @property
    def status(self) -> Status:
        return Status.SUCCESS if self.exit_code == 0 else Status.FAILED

    @property
    def failed_results(self) -> List[SourceOutcome]:
        return [r for r in self.results if not r.success]

    def add_result(self, result: SourceOutcome) -> None:
        self.results.append(result)

    def to_result(self) -> OperationResult:
        details = [
            f"{r.source} -> {r.target}: exit status {r.returncode}"
            for r in self.failed_results
        ]
        return OperationResult(self.status, self.exit_code, details)


def format_backup_summary(summary: BackupSummary, total_execution_time: float) -> str:
    """Format backup results into a readable summary."""
    lines = ["=== Backup Summary ==="]
    lines.append(f"Sources processed: {len(summary.results)}")
    lines.append(f"Successful: {len(summary.results) - len(summary.failed_results)}")
    lines.append(f"Failed: {len(summary.failed_results)}")
    lines.append(f"Aggregate exit status: {summary.exit_code}")
    lines.append(f"Total execution time: {total_execution_time:.2f} seconds")
    for result in summary.failed_results:
        lines.append(f"  FAILED {result.source} (exit {result.returncode})")
    return "\n".join(lines)


class BackupManager:
    """Main backup management class."""

    def __init__(
        self,
        config: AppConfig,
        runner: Callable[..., CommandResult] = run_command,
        now: Optional[datetime] = None,
    ):
        self.config = config
        self.runner = runner
        self.started_at = now or datetime.now()
        self.report_path = config.report_path(self.started_at)
        self.logger = logging.getLogger(__name__)

    def perform_preflight_checks(self) -> List[str]:
        """
        Check everything a run needs before any transfer starts.

        Creates the target directory if it is missing.

        Returns:
            List of error messages (empty if all checks pass)
        """
        backup = self.config.backup
        if backup is None:
            return ["Configuration has no 'backup' section"]

        errors = []
        if not backup.sources:
            errors.append("No backup sources configured (backup.sources is empty)")
        if not backup.target:
            errors.append("No backup target configured (backup.target is empty)")

        tools = [self.config.sync_command]
        if backup.recipients:
            tools.append(self.config.mail_command)
        missing = find_missing_tools(tools)
        if missing:
            errors.append(f"Missing required tools: {', '.join(missing)}")

        if errors:
            return errors

        target = Path(backup.target)
        if not target.is_dir():
            try:
                target.mkdir(parents=True, exist_ok=True)
                self.logger.info(f"Created backup target directory: {target}")
            except OSError as e:
                errors.append(f"Cannot create backup target directory {target}: {e}")

        return errors

    def start_report(self) -> Path:
        """Create (or truncate) today's report file."""
        self.report_path.parent.mkdir(parents=True, exist_ok=True)
        self.report_path.write_text("", encoding="utf-8")
        return self.report_path

    def append_report(self, text: str) -> None:
        with open(self.report_path, "a", encoding="utf-8") as f:
            f.write(text)
            if not text.endswith("\n"):
                f.write("\n")

    def sync_source(self, source: str, target: str) -> SourceOutcome:
        """Copy one source into the target and record its transcript."""
        start_time = datetime.now()
        cmd = [self.config.sync_command, *self.config.sync_options, source, target]
        self.logger.info(f"Syncing {source} -> {target}")

        result = self.runner(cmd)
        execution_time = (datetime.now() - start_time).total_seconds()
        outcome = SourceOutcome(
            source=source,
            target=target,
            returncode=result.returncode,
            output=result.output,
            execution_time=execution_time,
        )

        marker = "OK" if outcome.success else "FAILED"
        self.append_report(
            f"Source: {source}\n"
            f"Target: {target}\n"
            f"{result.output.rstrip()}\n"
            f"Result: {marker} (exit status {result.returncode})\n"
            f"{SEPARATOR}\n"
        )

        if outcome.success:
            self.logger.info(f"Sync of {source} completed in {execution_time:.2f}s")
        else:
            self.logger.error(
                f"Sync of {source} failed with exit status {result.returncode}"
            )
        return outcome

    def perform_backup(self) -> BackupSummary:
        """
        Sync every configured source, in order, into the target.

        A failing source does not stop the loop. Call perform_preflight_checks
        first; this method assumes they passed.
        """
        backup = self.config.backup
        summary = BackupSummary()
        self.start_report()
        self.append_report(
            f"Backup started {self.started_at.strftime('%Y-%m-%d %H:%M:%S')}\n{SEPARATOR}"
        )

        for source in backup.sources:
            summary.add_result(self.sync_source(source, backup.target))

        total_time = (datetime.now() - self.started_at).total_seconds()
        text = format_backup_summary(summary, total_time)
        self.append_report(text)
        self.logger.info("\n" + text)
        return summary

    def report_preflight_failure(self, errors: List[str]) -> None:
        """Write preflight errors to the report so the notification carries them."""
        self.start_report()
        self.append_report(
            "=== Backup - Pre-flight Check Failures ===\n"
            "The following errors prevented the backup from starting:\n"
            + "\n".join(f"- {error}" for error in errors)
        )
