from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from screencut.config import (
    AUTO_CLEANUP_ENV_VAR,
    CONFIG_ENV_VAR,
    DATA_DIR_ENV_VAR,
    DEFAULT_SCREENSHOT_PATTERNS,
    SCREENSHOT_DIRS_ENV_VAR,
    build_settings,
    load_config,
    write_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (CONFIG_ENV_VAR, DATA_DIR_ENV_VAR, SCREENSHOT_DIRS_ENV_VAR, AUTO_CLEANUP_ENV_VAR):
        monkeypatch.delenv(name, raising=False)


def test_defaults_derive_paths_from_data_dir(tmp_path) -> None:
    settings = build_settings({"data_dir": str(tmp_path)})

    assert settings.db_path == tmp_path / "screen_cut.db"
    assert settings.cache.directory == tmp_path / "cache"
    assert settings.backups.directory == tmp_path / "backup"
    assert settings.cache.max_size == 1024 * 1024 * 1024
    assert settings.cache.expiration == dt.timedelta(days=7)
    assert settings.backups.max_age == dt.timedelta(days=30)
    assert settings.backups.max_sets == 10
    assert settings.cleanup.interval == dt.timedelta(hours=24)
    assert settings.cleanup.auto is True
    assert [p.pattern for p in settings.screenshot_patterns] == DEFAULT_SCREENSHOT_PATTERNS


def test_default_patterns_match_common_screenshot_names(tmp_path) -> None:
    settings = build_settings({"data_dir": str(tmp_path)})
    names = [
        "Screenshot 2024-05-01 at 9.41.07.png",
        "Screen Shot 2020-01-02 at 10.11.12.png",
        "截屏2024-05-01 10.00.00.png",
    ]

    for name in names:
        assert any(pattern.search(name) for pattern in settings.screenshot_patterns), name
    assert not any(pattern.search("holiday.png") for pattern in settings.screenshot_patterns)


def test_load_config_reads_settings_mapping(tmp_path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"""
settings:
  data_dir: "{tmp_path / 'data'}"
  screenshot_dirs:
    - "{tmp_path / 'shots'}"
  screenshot_patterns:
    - "^capture-.*\\\\.png$"
  cache:
    max_size_mb: 10
    expiration_days: 2
  backups:
    dir: "{tmp_path / 'elsewhere'}"
    max_age_days: 3
    max_sets: 4
  cleanup:
    interval_hours: 6
  file_watcher:
    debounce_seconds: 2
    initial_scan: false
  logging:
    level: debug
""",
        encoding="utf-8",
    )

    settings = load_config(config_path)

    assert settings.data_dir == tmp_path / "data"
    assert settings.screenshot_dirs == [tmp_path / "shots"]
    assert settings.screenshot_patterns[0].search("capture-1.png")
    assert settings.cache.max_size == 10 * 1024 * 1024
    assert settings.cache.expiration == dt.timedelta(days=2)
    assert settings.backups.directory == tmp_path / "elsewhere"
    assert settings.backups.max_age == dt.timedelta(days=3)
    assert settings.backups.max_sets == 4
    assert settings.cleanup.interval == dt.timedelta(hours=6)
    assert settings.file_watcher.debounce_seconds == 2
    assert settings.file_watcher.initial_scan is False
    assert settings.logging.level == "DEBUG"


def test_environment_overrides_win(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(DATA_DIR_ENV_VAR, str(tmp_path / "env-data"))
    monkeypatch.setenv(SCREENSHOT_DIRS_ENV_VAR, f"{tmp_path / 'a'}, {tmp_path / 'b'}")
    monkeypatch.setenv(AUTO_CLEANUP_ENV_VAR, "0")

    settings = build_settings({"data_dir": str(tmp_path / "file-data"), "cleanup": {"auto": True}})

    assert settings.data_dir == tmp_path / "env-data"
    assert settings.screenshot_dirs == [tmp_path / "a", tmp_path / "b"]
    assert settings.cleanup.auto is False


def test_variables_in_config_are_expanded(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SHOTS_HOME", str(tmp_path))
    config_path = tmp_path / "config.yaml"
    config_path.write_text("settings:\n  data_dir: ${SHOTS_HOME}/data\n", encoding="utf-8")

    assert load_config(config_path).data_dir == tmp_path / "data"


def test_missing_explicit_config_is_an_error(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_missing_config_from_env_is_an_error(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "missing.yaml"))

    with pytest.raises(FileNotFoundError):
        load_config()


@pytest.mark.parametrize(
    "data, message",
    [
        ({"cache": {"max_size_mb": "lots"}}, "cache.max_size_mb"),
        ({"backups": {"max_sets": -1}}, "backups.max_sets"),
        ({"screenshot_patterns": ["("]}, "screenshot_patterns"),
        ({"cache": "big"}, "cache"),
        ({"logging": {"level": "LOUD"}}, "logging.level"),
    ],
)
def test_invalid_values_are_rejected(tmp_path, data, message) -> None:
    with pytest.raises(ValueError, match=message):
        build_settings({"data_dir": str(tmp_path), **data})


def test_top_level_must_be_mapping(tmp_path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="mapping"):
        load_config(config_path)


def test_written_config_loads_back(tmp_path) -> None:
    original = build_settings(
        {"data_dir": str(tmp_path / "data"), "screenshot_dirs": [str(tmp_path)], "backups": {"max_sets": 3}}
    )
    config_path = tmp_path / "out" / "config.yaml"

    write_config(config_path, original)
    reloaded = load_config(config_path)

    assert reloaded.data_dir == original.data_dir
    assert reloaded.screenshot_dirs == original.screenshot_dirs
    assert reloaded.backups.max_sets == 3
    assert reloaded.cache.expiration == original.cache.expiration
    assert [p.pattern for p in reloaded.screenshot_patterns] == [p.pattern for p in original.screenshot_patterns]
