from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from mediabridge.config import Config, get_config, init_config
from mediabridge.core.errors import ConfigurationError
from mediabridge.core.models import SyncDirection

YAML = """
plex:
  url: "http://plex:32400"
  token: "from-yaml"
jellyfin:
  url: "http://jellyfin:8096"
  api_key: "jf-key"
sync:
  watch_state: true
  watch_direction: "SourceToTarget"
  selected_libraries: ["1", "3"]
scheduler:
  enabled: true
  interval_hours: 6
"""


def _write(tmp_path: Path, text: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_load_from_yaml(tmp_path: Path) -> None:
    config = Config.load_from_yaml(_write(tmp_path, YAML))

    assert config.plex.token == "from-yaml"
    assert config.sync.watch_direction == SyncDirection.SOURCE_TO_TARGET
    assert config.sync.selected_libraries == ["1", "3"]
    assert config.sync.collections is True
    assert config.sync.position_threshold_seconds == 10.0
    assert config.scheduler.interval_hours == 6
    assert config.app.status_retention_minutes == 60
    assert config.validate_for_sync() == []


def test_env_overrides_secrets(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLEX__TOKEN", "from-env")
    monkeypatch.setenv("JELLYFIN__USER_ID", "abc")

    config = Config.load_from_yaml(_write(tmp_path, YAML))

    assert config.plex.token == "from-env"
    assert config.jellyfin.user_id == "abc"


def test_missing_file_is_reported(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        Config.load_from_yaml(str(tmp_path / "absent.yaml"))


def test_invalid_direction_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        Config.load_from_yaml(_write(tmp_path, "sync:\n  watch_direction: Sideways\n"))


def test_incomplete_config_lists_every_problem(tmp_path: Path) -> None:
    config = Config.load_from_yaml(_write(tmp_path, "plex:\n  url: http://plex:32400\n"))

    assert config.validate_for_sync() == [
        "Plex token is not configured",
        "Jellyfin server URL is not configured",
        "Jellyfin API key is not configured",
    ]
    with pytest.raises(ConfigurationError):
        config.ensure_valid_for_sync()


def test_init_config_sets_global(tmp_path: Path) -> None:
    config = init_config(_write(tmp_path, YAML))
    assert get_config() is config


def test_env_overrides_apply_to_every_section(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYNC__WATCH_STATE", "false")
    monkeypatch.setenv("SYNC__SELECTED_LIBRARIES", '["2", "5"]')
    monkeypatch.setenv("SCHEDULER__INTERVAL_HOURS", "12")
    monkeypatch.setenv("APP__LOG_LEVEL", "DEBUG")

    config = Config.load_from_yaml(_write(tmp_path, YAML))

    assert config.sync.watch_state is False
    assert config.sync.selected_libraries == ["2", "5"]
    assert config.scheduler.interval_hours == 12
    assert config.app.log_level == "DEBUG"
