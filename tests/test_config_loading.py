"""Tests for configuration loading system."""

import json
import shutil
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from src.config.settings import (
    Settings,
    deep_merge,
    get_settings,
    load_all_configs,
    load_schema,
    reset_settings,
    validate_config_section,
)

REPO_CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """Copy of the repository config directory that tests may modify."""
    target = tmp_path / "config"
    shutil.copytree(REPO_CONFIG_DIR, target)
    return target


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


def test_deep_merge_nested() -> None:
    """Test deep merge with nested dictionaries."""
    base = {"queue": {"max_attempts": 5, "lease_seconds": 120}}
    override = {"queue": {"lease_seconds": 60}}

    assert deep_merge(base, override) == {"queue": {"max_attempts": 5, "lease_seconds": 60}}


def test_deep_merge_lists_replaced() -> None:
    """Test that lists are replaced, not merged."""
    assert deep_merge({"items": [1, 2, 3]}, {"items": [4, 5]}) == {"items": [4, 5]}


def test_repository_config_is_valid() -> None:
    config = load_all_configs(REPO_CONFIG_DIR)

    assert config["queue"]["max_attempts"] == 5
    assert config["suppression"]["presence_ttl_seconds"] == 30


def test_load_schema_missing_returns_empty(tmp_path: Path) -> None:
    assert load_schema("nope", tmp_path) == {}


def test_validate_config_section_reports_file(config_dir: Path) -> None:
    with pytest.raises(ValueError, match="main.yaml"):
        validate_config_section(
            {"queue": {"max_attempts": 0}}, "main", "config/main.yaml", config_dir
        )


def test_unknown_keys_are_rejected(config_dir: Path) -> None:
    main = yaml.safe_load((config_dir / "main.yaml").read_text(encoding="utf-8"))
    main["queue"]["retries"] = 3
    _write_yaml(config_dir / "main.yaml", main)

    with pytest.raises(ValueError, match="Config validation failed for main"):
        load_all_configs(config_dir)


def test_later_files_override_main(config_dir: Path) -> None:
    _write_yaml(config_dir / "local.yaml", {"queue": {"drain_batch_size": 25}})

    config = load_all_configs(config_dir)

    assert config["queue"]["drain_batch_size"] == 25
    assert config["queue"]["max_attempts"] == 5


def test_override_files_validate_against_their_own_schema(config_dir: Path) -> None:
    (config_dir / "schemas" / "local.schema.json").write_text(
        json.dumps({"type": "object", "additionalProperties": False, "properties": {}}),
        encoding="utf-8",
    )
    _write_yaml(config_dir / "local.yaml", {"queue": {"drain_batch_size": 25}})

    with pytest.raises(ValueError, match="local"):
        load_all_configs(config_dir)


def test_missing_config_dir_yields_defaults(tmp_path: Path) -> None:
    settings = Settings(config_dir=tmp_path / "absent")

    assert settings.push_batch_size == 100
    assert settings.presence_ttl_seconds == 30
    assert settings.debounce_window_seconds == 10
    assert settings.enqueue_dedup_window_seconds == 30
    assert settings.max_attempts == 5
    assert settings.staleness_cutoff_hours == 24
    assert settings.database_type == "sqlite"
    assert settings.push_access_token is None


def test_settings_read_yaml_values(config_dir: Path) -> None:
    main = yaml.safe_load((config_dir / "main.yaml").read_text(encoding="utf-8"))
    main["queue"]["lease_seconds"] = 45
    main["database"]["type"] = "postgres"
    main["database"]["postgres"]["host"] = "db.internal"
    main["logging"]["json"] = True
    _write_yaml(config_dir / "main.yaml", main)

    settings = Settings(config_dir=config_dir)

    assert settings.lease_seconds == 45
    assert settings.database_type == "postgres"
    assert settings.postgres_host == "db.internal"
    assert settings.json_logs is True


def test_environment_overrides_yaml(config_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DRAIN_BATCH_SIZE", "3")
    monkeypatch.setenv("PUSH_ACCESS_TOKEN", "expo-secret")

    settings = Settings(config_dir=config_dir)

    assert settings.drain_batch_size == 3
    assert settings.push_access_token is not None
    assert settings.push_access_token.get_secret_value() == "expo-secret"


def test_invalid_log_level_is_rejected(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")

    with pytest.raises(ValidationError):
        Settings(config_dir=tmp_path)


def test_log_level_is_normalized(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "debug")

    assert Settings(config_dir=tmp_path).log_level == "DEBUG"


def test_get_settings_is_cached_until_reset(mocker) -> None:
    reset_settings()
    sentinel = object()
    mocker.patch("src.config.settings.Settings", return_value=sentinel)

    assert get_settings() is sentinel
    assert get_settings() is sentinel
    reset_settings()
