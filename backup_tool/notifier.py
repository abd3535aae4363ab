"""Mail notification of backup results."""

import logging
from pathlib import Path
from typing import Callable

from .config import AppConfig
from .results import OperationResult
from .system import CommandResult, run_command


class Notifier:
    """Sends the run report to the configured recipients through mutt."""

    def __init__(
        self,
        config: AppConfig,
        report_path: Path,
        runner: Callable[..., CommandResult] = run_command,
    ):
        self.config = config
        self.report_path = Path(report_path)
        self.runner = runner
        self.logger = logging.getLogger(__name__)

    def subject(self, status_label: str) -> str:
        return f"[{self.config.tool_name}]{status_label}"

    def build_command(self, status_label: str) -> list:
        cmd = [self.config.mail_command, "-s", self.subject(status_label)]
        if self.report_path.exists():
            cmd.extend(["-a", str(self.report_path)])
        cmd.append("--")
        cmd.extend(self.config.recipients)
        return cmd

    def send_report(self, status_label: str) -> OperationResult:
        """
        Mail the report with ``status_label`` in the subject.

        The result reflects the mail send only, not the backup itself.
        """
        recipients = self.config.recipients
        if not recipients:
            self.logger.warning("No recipients configured, report not sent")
            return OperationResult.failure("no recipients configured")

        body = (
            f"Backup finished with status {status_label}.\n"
            f"Report: {self.report_path.name}\n"
        )
        result = self.runner(self.build_command(status_label), input_text=body)
        if not result.ok:
            self.logger.error(
                f"Failed to send report to {', '.join(recipients)} "
                f"(exit status {result.returncode}): {result.output.strip()}"
            )
            return OperationResult.failure(
                result.output.strip(), exit_code=result.returncode
            )

        self.logger.info(f"Report sent to: {', '.join(recipients)}")
        return OperationResult.success()
