from __future__ import annotations

import datetime as dt
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .utils import dump_yaml_file, env_list, expand_path, load_yaml_file, parse_env_bool

CONFIG_ENV_VAR = "SCREENCUT_CONFIG"
DATA_DIR_ENV_VAR = "SCREENCUT_DATA_DIR"
SCREENSHOT_DIRS_ENV_VAR = "SCREENCUT_SCREENSHOT_DIRS"
AUTO_CLEANUP_ENV_VAR = "SCREENCUT_AUTO_CLEANUP"

DEFAULT_DATA_DIR = Path.home() / ".config" / "screen-cut"
DEFAULT_CONFIG_PATH = DEFAULT_DATA_DIR / "config.yaml"
DATABASE_FILENAME = "screen_cut.db"

DEFAULT_SCREENSHOT_DIRS = [
    Path.home() / "Desktop",
    Path.home() / "Downloads",
    Path.home() / "Pictures",
]

DEFAULT_SCREENSHOT_PATTERNS = [
    r"^Screen(shot|[ ]Shot) \d{4}-\d{2}-\d{2} at \d{2}\.\d{2}\.\d{2}.*\.png$",
    r"^Screenshot \d{4}-\d{2}-\d{2} at \d{1,2}\.\d{2}\.\d{2}.*\.png$",
    r"^截屏\d{4}-\d{2}-\d{2}.*\.png$",
    r"^Screen Shot \d{4}-\d{2}-\d{2}.*\.png$",
]

_MEGABYTE = 1024 * 1024


@dataclass
class CacheSettings:
    directory: Path
    max_size: int = 1024 * _MEGABYTE
    max_age: dt.timedelta = field(default_factory=lambda: dt.timedelta(days=7))
    expiration: dt.timedelta = field(default_factory=lambda: dt.timedelta(days=7))


@dataclass
class BackupSettings:
    directory: Path
    max_age: dt.timedelta = field(default_factory=lambda: dt.timedelta(days=30))
    max_sets: int = 10


@dataclass
class CleanupSettings:
    interval: dt.timedelta = field(default_factory=lambda: dt.timedelta(hours=24))
    auto: bool = True


@dataclass
class WatcherSettings:
    debounce_seconds: float = 0.5
    initial_scan: bool = True


@dataclass
class LoggingSettings:
    level: str = "INFO"
    file: Path | None = None


@dataclass
class Settings:
    """Explicit configuration passed to every component constructor."""

    data_dir: Path
    cache: CacheSettings
    backups: BackupSettings
    screenshot_dirs: list[Path] = field(default_factory=lambda: list(DEFAULT_SCREENSHOT_DIRS))
    screenshot_patterns: list[re.Pattern[str]] = field(
        default_factory=lambda: [re.compile(pattern) for pattern in DEFAULT_SCREENSHOT_PATTERNS]
    )
    cleanup: CleanupSettings = field(default_factory=CleanupSettings)
    file_watcher: WatcherSettings = field(default_factory=WatcherSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def db_path(self) -> Path:
        return self.data_dir / DATABASE_FILENAME


def _require_mapping(value: Any, *, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{field_name}' must be provided as a mapping when specified")
    return value


def _ensure_string_list(value: Any, *, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be provided as a list of strings")
    result: list[str] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, str):
            raise ValueError(f"'{field_name}[{index}]' must be a string")
        cleaned = entry.strip()
        if cleaned:
            result.append(cleaned)
    return result


def _parse_number(value: Any, *, field_name: str, minimum: float = 0) -> float:
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be a number") from exc
    if number < minimum:
        raise ValueError(f"'{field_name}' must be greater than or equal to {minimum:g}")
    return number


def _parse_int(value: Any, *, field_name: str, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise ValueError(f"'{field_name}' must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be an integer") from exc
    if number < minimum:
        raise ValueError(f"'{field_name}' must be greater than or equal to {minimum}")
    return number


def _compile_patterns(raw: list[str], *, field_name: str) -> list[re.Pattern[str]]:
    compiled: list[re.Pattern[str]] = []
    for index, pattern in enumerate(raw):
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise ValueError(f"'{field_name}[{index}]' is not a valid regular expression: {exc}") from exc
    return compiled


def _build_cache_settings(data: dict[str, Any], data_dir: Path) -> CacheSettings:
    directory = expand_path(data["dir"]) if data.get("dir") else data_dir / "cache"
    return CacheSettings(
        directory=directory,
        max_size=int(_parse_number(data.get("max_size_mb", 1024), field_name="cache.max_size_mb") * _MEGABYTE),
        max_age=dt.timedelta(days=_parse_number(data.get("max_age_days", 7), field_name="cache.max_age_days")),
        expiration=dt.timedelta(
            days=_parse_number(data.get("expiration_days", 7), field_name="cache.expiration_days")
        ),
    )


def _build_backup_settings(data: dict[str, Any], data_dir: Path) -> BackupSettings:
    directory = expand_path(data["dir"]) if data.get("dir") else data_dir / "backup"
    return BackupSettings(
        directory=directory,
        max_age=dt.timedelta(days=_parse_number(data.get("max_age_days", 30), field_name="backups.max_age_days")),
        max_sets=_parse_int(data.get("max_sets", 10), field_name="backups.max_sets"),
    )


def _build_cleanup_settings(data: dict[str, Any]) -> CleanupSettings:
    auto = bool(data.get("auto", True))
    env_auto = parse_env_bool(os.getenv(AUTO_CLEANUP_ENV_VAR))
    if env_auto is not None:
        auto = env_auto
    return CleanupSettings(
        interval=dt.timedelta(
            hours=_parse_number(data.get("interval_hours", 24), field_name="cleanup.interval_hours")
        ),
        auto=auto,
    )


def _build_watcher_settings(data: dict[str, Any]) -> WatcherSettings:
    return WatcherSettings(
        debounce_seconds=_parse_number(
            data.get("debounce_seconds", 0.5), field_name="file_watcher.debounce_seconds"
        ),
        initial_scan=bool(data.get("initial_scan", True)),
    )


def _build_logging_settings(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).strip().upper()
    if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ValueError(f"'logging.level' must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL, got: {level}")
    log_file = data.get("file")
    return LoggingSettings(level=level, file=expand_path(log_file) if log_file else None)


def build_settings(data: dict[str, Any] | None = None) -> Settings:
    """Build :class:`Settings` from the ``settings`` mapping of a config file.

    Environment overrides (``SCREENCUT_DATA_DIR``, ``SCREENCUT_SCREENSHOT_DIRS``,
    ``SCREENCUT_AUTO_CLEANUP``) win over values from the mapping.
    """
    data = _require_mapping(data, field_name="settings")

    env_data_dir = os.getenv(DATA_DIR_ENV_VAR)
    if env_data_dir:
        data_dir = expand_path(env_data_dir)
    elif data.get("data_dir"):
        data_dir = expand_path(data["data_dir"])
    else:
        data_dir = DEFAULT_DATA_DIR

    screenshot_dirs_raw = env_list(SCREENSHOT_DIRS_ENV_VAR)
    if screenshot_dirs_raw is None:
        screenshot_dirs_raw = _ensure_string_list(data.get("screenshot_dirs"), field_name="screenshot_dirs")
    screenshot_dirs = [expand_path(raw) for raw in screenshot_dirs_raw] or list(DEFAULT_SCREENSHOT_DIRS)

    patterns_raw = _ensure_string_list(data.get("screenshot_patterns"), field_name="screenshot_patterns")
    patterns = _compile_patterns(patterns_raw or DEFAULT_SCREENSHOT_PATTERNS, field_name="screenshot_patterns")

    return Settings(
        data_dir=data_dir,
        cache=_build_cache_settings(_require_mapping(data.get("cache"), field_name="cache"), data_dir),
        backups=_build_backup_settings(_require_mapping(data.get("backups"), field_name="backups"), data_dir),
        screenshot_dirs=screenshot_dirs,
        screenshot_patterns=patterns,
        cleanup=_build_cleanup_settings(_require_mapping(data.get("cleanup"), field_name="cleanup")),
        file_watcher=_build_watcher_settings(
            _require_mapping(data.get("file_watcher"), field_name="file_watcher")
        ),
        logging=_build_logging_settings(_require_mapping(data.get("logging"), field_name="logging")),
    )


def resolve_config_path(path: Path | None = None) -> Path:
    if path is not None:
        return path
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return expand_path(env_path)
    return DEFAULT_CONFIG_PATH


def load_config(path: Path | None = None) -> Settings:
    """Load settings from a YAML file.

    A missing file at the default location yields the built-in defaults; an
    explicitly requested file that does not exist is an error.
    """
    config_path = resolve_config_path(path)
    if not config_path.exists():
        if path is not None or os.getenv(CONFIG_ENV_VAR):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        return build_settings({})
    data = load_yaml_file(config_path)
    return build_settings(data.get("settings", {}))


def settings_document(settings: Settings) -> dict[str, Any]:
    """Render settings back into the mapping layout :func:`load_config` reads."""
    document: dict[str, Any] = {
        "data_dir": str(settings.data_dir),
        "screenshot_dirs": [str(path) for path in settings.screenshot_dirs],
        "screenshot_patterns": [pattern.pattern for pattern in settings.screenshot_patterns],
        "cache": {
            "dir": str(settings.cache.directory),
            "max_size_mb": settings.cache.max_size // _MEGABYTE,
            "max_age_days": settings.cache.max_age.total_seconds() / 86400,
            "expiration_days": settings.cache.expiration.total_seconds() / 86400,
        },
        "backups": {
            "dir": str(settings.backups.directory),
            "max_age_days": settings.backups.max_age.total_seconds() / 86400,
            "max_sets": settings.backups.max_sets,
        },
        "cleanup": {
            "interval_hours": settings.cleanup.interval.total_seconds() / 3600,
            "auto": settings.cleanup.auto,
        },
        "file_watcher": {
            "debounce_seconds": settings.file_watcher.debounce_seconds,
            "initial_scan": settings.file_watcher.initial_scan,
        },
        "logging": {"level": settings.logging.level},
    }
    if settings.logging.file is not None:
        document["logging"]["file"] = str(settings.logging.file)
    return {"settings": document}


def write_config(path: Path, settings: Settings) -> None:
    dump_yaml_file(path, settings_document(settings))


__all__ = [
    "BackupSettings",
    "CacheSettings",
    "CleanupSettings",
    "LoggingSettings",
    "Settings",
    "WatcherSettings",
    "build_settings",
    "settings_document",
    "write_config",
    "load_config",
]
