"""
Tests for configuration loading and validation.
"""
from datetime import datetime
from pathlib import Path

import pytest

from backup_tool.config import load_config


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


def test_load_config_basic(tmp_path):
    """Test basic configuration loading."""
    path = write_config(
        tmp_path,
        """
log_level: debug
cron:
  schedule: "0 3 * * *"
  daily_time: "04:15"
backup:
  sources: /a, /b ,/c
  target: /backup
  recipients: ops@example.com,admin@example.com
""",
    )

    config = load_config(str(path))

    assert config.log_level == "DEBUG"
    assert config.cron.schedule == "0 3 * * *"
    assert config.cron.daily_time == "04:15"
    assert config.backup.sources == ["/a", "/b", "/c"]
    assert config.backup.target == "/backup"
    assert config.recipients == ["ops@example.com", "admin@example.com"]


def test_config_defaults(tmp_path):
    """Test that configuration uses proper defaults."""
    path = write_config(tmp_path, "backup:\n  target: /backup\n")

    config = load_config(str(path))

    assert config.log_level == "INFO"
    assert config.tool_name == "backup_tool"
    assert config.sync_command == "rsync"
    assert config.mail_command == "mutt"
    assert config.fstab_file == "/etc/fstab"
    assert config.cron is None
    assert config.backup.sources == []
    assert config.recipients == []


def test_sources_accept_yaml_list(tmp_path):
    path = write_config(
        tmp_path,
        "backup:\n  sources:\n    - /srv/data\n    - /etc\n  target: /backup\n",
    )
    assert load_config(str(path)).backup.sources == ["/srv/data", "/etc"]


def test_bare_section_is_present_but_empty(tmp_path):
    path = write_config(tmp_path, "backup:\ncron:\n")

    config = load_config(str(path))

    assert config.backup is not None
    assert config.backup.target == ""
    assert config.cron is not None
    assert config.cron.schedule is None


def test_unquoted_daily_time_is_recovered(tmp_path):
    """YAML 1.1 loads 9:30 as the integer 570."""
    path = write_config(tmp_path, "cron:\n  daily_time: 9:30\n")
    assert load_config(str(path)).cron.daily_time == "09:30"


def test_invalid_recipient_rejected(tmp_path):
    path = write_config(tmp_path, "backup:\n  recipients: not-an-address\n")
    with pytest.raises(ValueError, match="Invalid email format"):
        load_config(str(path))


def test_invalid_log_level_rejected(tmp_path):
    path = write_config(tmp_path, "log_level: chatty\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "absent.yaml"))


def test_empty_file(tmp_path):
    path = write_config(tmp_path, "")
    with pytest.raises(ValueError, match="empty"):
        load_config(str(path))


def test_report_path_is_dated(sample_config):
    path = sample_config.report_path(datetime(2024, 5, 17, 3, 0))
    assert path == Path(sample_config.report_dir) / "backup_report_2024-05-17.log"
