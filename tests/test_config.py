from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from core.config import load_config, resolve_home
from core.duration import duration_seconds, humanize, parse_duration
from core.errors import FatalSetup


def _write_config(home: Path, config: dict) -> None:
    home.mkdir(parents=True, exist_ok=True)
    (home / "config.yaml").write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")


def test_defaults_without_config_file(tmp_path: Path) -> None:
    home = tmp_path / "home"
    config = load_config(home=home)

    assert config.home_path == home
    assert config.userscripts_path.is_dir()
    assert config.pid_path == home / "daemon.pid"
    assert config.scheduler.timezone == "UTC"
    assert config.scheduler.allow_overlap is True
    assert duration_seconds(config.scheduler.shutdown_timeout) == 4.0
    assert config.pipeline.max_retries == 3
    assert config.pipeline.inference_attempts == 1
    assert config.ollama.default_host == "http://localhost:11434"
    assert config.server.enabled is False


def test_yaml_values_and_env_references(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WO_TEST_OLLAMA", "http://gpu-box:11434")
    _write_config(tmp_path, {
        "scheduler": {"timezone": "Europe/Berlin", "heartbeat_interval": "1m", "allow_overlap": False},
        "pipeline": {"max_retries": 5, "retry_delay": "500ms"},
        "extraction": {"browser": "firefox"},
        "ollama": {"default_host": "${WO_TEST_OLLAMA}"},
    })

    config = load_config(home=tmp_path)

    assert config.scheduler.timezone == "Europe/Berlin"
    assert config.scheduler.allow_overlap is False
    assert config.pipeline.max_retries == 5
    assert duration_seconds(config.pipeline.retry_delay) == 0.5
    assert config.extraction.browser == "firefox"
    assert config.ollama.default_host == "http://gpu-box:11434"


@pytest.mark.parametrize(
    "config",
    [
        {"scheduler": {"timezone": "Mars/Olympus"}},
        {"scheduler": {"heartbeat_interval": "soon"}},
        {"scheduler": {"shutdown_timeout": "later"}},
        {"pipeline": {"max_retries": 0}},
        {"extraction": {"browser": "lynx"}},
    ],
)
def test_invalid_config_is_fatal(tmp_path: Path, config: dict) -> None:
    _write_config(tmp_path, config)
    with pytest.raises(FatalSetup):
        load_config(home=tmp_path)


def test_uncreatable_home_is_fatal(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    with pytest.raises(FatalSetup, match="Error creating directory"):
        load_config(home=blocker / "home")


def test_home_resolution(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WEB_OBSERVER_HOME", str(tmp_path / "from-env"))
    assert resolve_home() == tmp_path / "from-env"
    assert resolve_home(tmp_path / "explicit") == tmp_path / "explicit"


def test_durations() -> None:
    assert parse_duration("500ms").total_seconds() == 0.5
    assert duration_seconds("5m") == 300
    assert duration_seconds("2h") == 7200
    assert duration_seconds(30) == 30
    with pytest.raises(ValueError):
        parse_duration("soon")
    assert humanize(parse_duration("2h") + parse_duration("5m")) == "2h 05m"
    assert humanize(parse_duration("45s")) == "45s"
