from __future__ import annotations

import os
import shutil
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import FileOperationError

# Boolean true/false string values
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def expand_path(value: str | Path) -> Path:
    """Expand ``~`` and environment variables in a configured path."""
    text = os.path.expandvars(str(value))
    try:
        return Path(text).expanduser()
    except RuntimeError:
        # expanduser() fails for unknown users (e.g. ~nobody); keep it literal
        return Path(text)


def expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    if isinstance(value, dict):
        return {key: expand_env(val) for key, val in value.items()}
    return value


def load_yaml_file(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping at the top level")
    return expand_env(data)


def dump_yaml_file(path: Path, data: Dict[str, Any]) -> None:
    ensure_directory(path.parent)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False, allow_unicode=True)


def copy_file(source: Path, destination: Path) -> None:
    """Copy ``source`` to ``destination`` preserving timestamps.

    Raises:
        FileOperationError: if the copy fails for any filesystem reason.
    """
    ensure_directory(destination.parent)
    try:
        shutil.copy2(source, destination)
    except OSError as exc:
        raise FileOperationError(f"Unable to copy {source} to {destination}: {exc}", path=source) from exc


def remove_file(path: Path) -> bool:
    """Remove ``path`` if it exists.

    Returns:
        True if a file was removed, False if it was already gone.

    Raises:
        FileOperationError: if the file exists but cannot be removed.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise FileOperationError(f"Unable to remove {path}: {exc}", path=path) from exc
    return True


def unique_destination(
    directory: Path,
    name: str,
    taken: Callable[[Path], bool] | None = None,
) -> Path:
    """Return ``directory / name``, adding `` (n)`` before the suffix if taken.

    A name is taken when a file exists there or when ``taken`` says so.
    """

    def is_free(path: Path) -> bool:
        return not path.exists() and not (taken is not None and taken(path))

    candidate = directory / name
    if is_free(candidate):
        return candidate
    stem = Path(name).stem
    suffix = Path(name).suffix
    counter = 1
    while True:
        candidate = directory / f"{stem} ({counter}){suffix}"
        if is_free(candidate):
            return candidate
        counter += 1


def format_size(num_bytes: int | float) -> str:
    """Format a byte count as a short human readable string (e.g. ``1.50 MB``)."""
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.2f} {_SIZE_UNITS[unit_index]}"


def parse_env_bool(value: Optional[str]) -> Optional[bool]:
    """Parse a boolean from an environment variable string.

    Returns None if value is None or not a recognized boolean string.
    """
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def env_list(name: str, separator: str = ",") -> Optional[List[str]]:
    """Get a list of strings from an environment variable.

    Returns None if not set, empty list if set but empty.
    """
    raw = os.getenv(name)
    if raw is None:
        return None
    return [part.strip() for part in raw.split(separator) if part.strip()]
