"""
Tests for the backup runner: preflight checks, per-source sync and aggregation.
"""
from datetime import datetime
from pathlib import Path

import pytest

from backup_tool.backup_manager import BackupManager, BackupSummary, SourceOutcome
from backup_tool.config import BackupConfig
from backup_tool.results import Status
from backup_tool.system import CommandResult
from conftest import FakeRunner


class SyncRunner(FakeRunner):
    """Returns a status per source path."""

    def __init__(self, statuses):
        super().__init__()
        self.statuses = statuses

    def __call__(self, cmd, input_text=None):
        self.calls.append((list(cmd), input_text))
        source = cmd[-2]
        return CommandResult(self.statuses.get(source, 0), f"sending {source}\n")


@pytest.mark.parametrize(
    "statuses, expected",
    [
        ([0], 0),
        ([0, 0, 0], 0),
        ([0, 1], 1),
        ([23, 0, 24], 23 | 24),
        ([2, 2], 2),
    ],
)
def test_aggregate_is_zero_only_when_all_succeed(statuses, expected):
    summary = BackupSummary(
        [SourceOutcome(f"/src{i}", "/t", rc) for i, rc in enumerate(statuses)]
    )
    assert summary.exit_code == expected
    assert (summary.status is Status.SUCCESS) == all(rc == 0 for rc in statuses)


def test_empty_summary_succeeds():
    assert BackupSummary().exit_code == 0


def test_preflight_creates_target(sample_config):
    manager = BackupManager(sample_config, runner=SyncRunner({}))

    assert manager.perform_preflight_checks() == []
    assert Path(sample_config.backup.target).is_dir()


def test_preflight_missing_section(make_config):
    manager = BackupManager(make_config(backup=None))
    assert manager.perform_preflight_checks() == ["Configuration has no 'backup' section"]


def test_preflight_reports_empty_sources_and_target(make_config):
    config = make_config(backup=BackupConfig())
    errors = BackupManager(config).perform_preflight_checks()

    assert any("sources" in e for e in errors)
    assert any("target" in e for e in errors)


def test_preflight_lists_all_missing_tools(make_config):
    config = make_config(
        sync_command="no-such-sync-tool", mail_command="no-such-mailer"
    )
    errors = BackupManager(config).perform_preflight_checks()

    assert errors == ["Missing required tools: no-such-sync-tool, no-such-mailer"]


def test_mail_tool_not_required_without_recipients(make_config, tmp_path):
    config = make_config(
        mail_command="no-such-mailer",
        backup=BackupConfig(sources=["/a"], target=str(tmp_path / "t")),
    )
    assert BackupManager(config).perform_preflight_checks() == []


def test_preflight_fails_when_target_cannot_be_created(make_config, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    config = make_config(
        backup=BackupConfig(sources=["/a"], target=str(blocker / "sub"))
    )

    errors = BackupManager(config).perform_preflight_checks()

    assert len(errors) == 1
    assert "Cannot create backup target" in errors[0]


def test_sources_synced_in_order_despite_failure(sample_config):
    """A failing source does not stop the remaining ones."""
    first, second = sample_config.backup.sources
    runner = SyncRunner({first: 1})
    manager = BackupManager(sample_config, runner=runner)
    manager.perform_preflight_checks()

    summary = manager.perform_backup()

    assert [cmd[-2] for cmd, _ in runner.calls] == [first, second]
    assert all(cmd[-1] == sample_config.backup.target for cmd, _ in runner.calls)
    assert summary.exit_code == 1
    assert [r.source for r in summary.failed_results] == [first]


def test_sync_command_includes_options(make_config):
    config = make_config(sync_options=["-a", "--delete"])
    runner = SyncRunner({})
    BackupManager(config, runner=runner).perform_backup()

    cmd, _ = runner.calls[0]
    assert cmd[:3] == ["true", "-a", "--delete"]


def test_report_transcript(sample_config):
    first, second = sample_config.backup.sources
    manager = BackupManager(
        sample_config, runner=SyncRunner({second: 1}), now=datetime(2024, 1, 2, 3, 4)
    )

    manager.perform_backup()

    report = manager.report_path.read_text()
    assert manager.report_path.name == "backup_report_2024-01-02.log"
    assert report.count("Source: ") == 2
    assert f"Source: {first}" in report
    assert f"sending {second}" in report
    assert "Result: OK (exit status 0)" in report
    assert "Result: FAILED (exit status 1)" in report
    assert "Aggregate exit status: 1" in report


def test_report_is_truncated_at_start(sample_config):
    manager = BackupManager(sample_config, runner=SyncRunner({}))
    manager.report_path.parent.mkdir(parents=True, exist_ok=True)
    manager.report_path.write_text("stale content from an earlier run\n")

    manager.perform_backup()

    assert "stale content" not in manager.report_path.read_text()


def test_to_result_details_name_failed_sources(sample_config):
    first, _ = sample_config.backup.sources
    summary = BackupManager(sample_config, runner=SyncRunner({first: 12})).perform_backup()

    result = summary.to_result()

    assert result.status is Status.FAILED
    assert result.exit_code == 12
    assert result.details == [f"{first} -> {sample_config.backup.target}: exit status 12"]
