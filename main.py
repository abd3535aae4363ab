#!/usr/bin/env python3
"""
backup-tool: host-local backup orchestration with cron-based scheduling.

Main entry point for the backup application.
"""

import argparse
import logging
import shlex
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from backup_tool.backup_manager import BackupManager
from backup_tool.config import AppConfig, load_config
from backup_tool.lock import PidMarker, SingleInstanceGuard
from backup_tool.mount_wizard import LocalMountWizard, SambaMountWizard, UnmountWizard
from backup_tool.notifier import Notifier
from backup_tool.prompts import ConsolePrompter
from backup_tool.results import Status
from backup_tool.scheduler import CronScheduler
from backup_tool.system import require_root, require_tools

COMMANDS = ("schedule", "backup", "mount", "mount-samba", "umount")
WIZARDS = {
    "mount": LocalMountWizard,
    "mount-samba": SambaMountWizard,
    "umount": UnmountWizard,
}
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"


def setup_logging(config: AppConfig, cli_mode: bool = False) -> logging.Logger:
    """Set up logging configuration."""
    log_file_path = Path(config.log_file)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    # Every module logs under the backup_tool package logger
    logger = logging.getLogger("backup_tool")
    logger.setLevel(config.log_level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = RotatingFileHandler(
        log_file_path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if cli_mode:
        # Interactive use: mirror the log on the console
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def backup_command() -> str:
    """Interpreter, script and command; the same from every directory."""
    script = Path(__file__).resolve()
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))} backup"


def backup_invocation() -> str:
    """Command line cron runs for the backup job."""
    return f"cd {shlex.quote(str(Path.cwd()))} && {backup_command()}"


def parse_arguments(argv=None) -> str:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Schedule and run rsync backups, and manage backup mounts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  schedule      Install the backup job in the crontab
  backup        Sync all configured sources to the target and mail a report
  mount         Add a local block device to /etc/fstab and mount it
  mount-samba   Add a Samba/CIFS share to /etc/fstab and mount it
  umount        Unmount an fstab entry and remove it
        """,
    )
    parser.add_argument("command", nargs="?", help="one of: " + ", ".join(COMMANDS))
    args = parser.parse_args(argv)
    return args.command


def run_backup(config: AppConfig, logger: logging.Logger) -> int:
    """Run every source, write the report, mail it. Returns the aggregate status."""
    with PidMarker(config.pid_file):
        manager = BackupManager(config)
        notifier = Notifier(config, manager.report_path)

        logger.info("Performing pre-flight checks...")
        errors = manager.perform_preflight_checks()
        if errors:
            logger.critical("Pre-flight checks failed:")
            for error in errors:
                logger.critical(f"  - {error}")
            manager.report_preflight_failure(errors)
            if config.recipients:
                notifier.send_report(Status.FAILED.value)
            return 1

        logger.info(f"Pre-flight checks passed, {len(config.backup.sources)} source(s) to sync")
        summary = manager.perform_backup()

        result = summary.to_result()
        if result.ok:
            logger.info("All sources synced successfully")
        else:
            for detail in result.details:
                logger.warning(f"Sync failed: {detail}")
            logger.warning(f"See {manager.report_path} for the full transcript")

        notifier.send_report(summary.status.value)
        return summary.exit_code


def run_schedule(config: AppConfig, logger: logging.Logger) -> int:
    require_tools(["crontab"])
    scheduler = CronScheduler(config, backup_invocation(), match=backup_command())
    result = scheduler.install_schedule()
    if not result.ok:
        logger.error(f"Schedule not installed: {'; '.join(result.details)}")
    return result.exit_code


def run_wizard(command: str, config: AppConfig, logger: logging.Logger) -> int:
    wizard_class = WIZARDS[command]
    require_root()
    require_tools(wizard_class.required_tools)
    result = wizard_class(config, ConsolePrompter()).run()
    logger.info(f"{command} finished with status {result.status.value}")
    return result.exit_code


def main(argv=None, config_path: str = "config.yaml") -> int:
    """Main application entry point."""
    start_time = datetime.now()

    command = parse_arguments(argv)
    if command not in COMMANDS:
        print(
            f"ERROR: Unknown command: {command or '(none)'}. "
            f"Expected one of: {', '.join(COMMANDS)}",
            file=sys.stderr,
        )
        return 1

    try:
        config = load_config(config_path)

        cli_mode = command in WIZARDS or sys.stdout.isatty()
        logger = setup_logging(config, cli_mode=cli_mode)
        logger.info(f"Starting '{command}'")

        guard = SingleInstanceGuard(config.lock_file)
        if not guard.try_acquire():
            error_msg = f"Another backup_tool instance is running (lock {config.lock_file})"
            print(f"ERROR: {error_msg}", file=sys.stderr)
            logger.error(error_msg)
            return 1

        with guard:
            if command == "backup":
                return run_backup(config, logger)
            if command == "schedule":
                return run_schedule(config, logger)
            return run_wizard(command, config, logger)

    except FileNotFoundError as e:
        error_msg = f"Configuration file error: {e}"
        print(f"ERROR: {error_msg}", file=sys.stderr)
        if "logger" in locals():
            logger.critical(error_msg)
        return 1

    except ValueError as e:
        error_msg = str(e)
        print(f"ERROR: {error_msg}", file=sys.stderr)
        if "logger" in locals():
            logger.critical(error_msg)
        return 1

    except PermissionError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if "logger" in locals():
            logger.critical(str(e))
        return 1

    except RuntimeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if "logger" in locals():
            logger.critical(str(e))
        return 1

    except KeyboardInterrupt:
        error_msg = f"'{command}' interrupted by user"
        print(f"\nINTERRUPTED: {error_msg}", file=sys.stderr)
        if "logger" in locals():
            logger.warning(error_msg)
        return 130

    except Exception as e:
        error_msg = f"Unexpected error: {e}"
        print(f"ERROR: {error_msg}", file=sys.stderr)
        if "logger" in locals():
            logger.critical(error_msg, exc_info=True)
        return 1

    finally:
        if "logger" in locals():
            total_time = (datetime.now() - start_time).total_seconds()
            logger.info(f"'{command}' completed in {total_time:.2f} seconds")


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
