"""
Pytest configuration and shared fixtures.
"""
import pytest

from backup_tool.config import AppConfig, BackupConfig, CronConfig
from backup_tool.prompts import Prompter
from backup_tool.system import CommandResult


class FakeRunner:
    """
    Stand-in for run_command.

    Responses are keyed by the command's first word (or first two words,
    which wins when both match); each value is a CommandResult or a list of
    them consumed in order.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def __call__(self, cmd, input_text=None):
        self.calls.append((list(cmd), input_text))
        for key in (" ".join(cmd[:2]), cmd[0]):
            if key in self.responses:
                response = self.responses[key]
                if isinstance(response, list):
                    return response.pop(0) if len(response) > 1 else response[0]
                return response
        return CommandResult(0, "")

    def commands(self, name):
        return [cmd for cmd, _ in self.calls if cmd[0] == name]


class ScriptedPrompter(Prompter):
    """Answers prompts from a fixed list and records everything shown."""

    def __init__(self, answers):
        self.answers = list(answers)
        self.asked = []
        self.shown = []

    def ask(self, message):
        self.asked.append(message)
        if not self.answers:
            raise AssertionError(f"No scripted answer left for prompt: {message}")
        return self.answers.pop(0)

    def show(self, message):
        self.shown.append(message)


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def make_config(tmp_path):
    """Build an AppConfig rooted in a temporary directory."""

    def _make(**overrides):
        values = dict(
            log_file=str(tmp_path / "log" / "backup_tool.log"),
            lock_file=str(tmp_path / "backup_tool.lock"),
            pid_file=str(tmp_path / "backup_tool.pid"),
            report_dir=str(tmp_path / "reports"),
            fstab_file=str(tmp_path / "fstab"),
            mounts_file=str(tmp_path / "mounts"),
            # Present on every Linux host; the real tools are never invoked
            sync_command="true",
            mail_command="true",
            cron=CronConfig(),
            backup=BackupConfig(
                sources=[str(tmp_path / "a"), str(tmp_path / "b")],
                target=str(tmp_path / "backup"),
                recipients=["admin@example.com"],
            ),
        )
        values.update(overrides)
        return AppConfig(**values)

    return _make


@pytest.fixture
def sample_config(make_config):
    return make_config()


class FakeCrontab(FakeRunner):
    """Keeps a crontab in memory behind 'crontab -l' / 'crontab -'."""

    def __init__(self, content=None):
        super().__init__()
        self.content = content

    def __call__(self, cmd, input_text=None):
        self.calls.append((list(cmd), input_text))
        if cmd == ["crontab", "-l"]:
            if self.content is None:
                return CommandResult(1, "no crontab for root")
            return CommandResult(0, self.content)
        if cmd == ["crontab", "-"]:
            self.content = input_text
            return CommandResult(0, "")
        raise AssertionError(f"unexpected command {cmd}")

    def lines(self):
        return [line for line in self.content.splitlines() if line.strip()]
