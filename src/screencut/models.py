from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


@dataclass(slots=True)
class ItemFailure:
    path: str
    error: str

    def __str__(self) -> str:
        return f"{self.path}: {self.error}"


@dataclass(slots=True)
class SweepResult:
    """Outcome of one retention pass over the cache or the backups."""

    removed: List[str] = field(default_factory=list)
    failed: List[ItemFailure] = field(default_factory=list)
    freed_bytes: int = 0

    def register_removed(self, path: str, size: int = 0) -> None:
        self.removed.append(path)
        self.freed_bytes += max(size, 0)

    def register_failure(self, path: str, error: object) -> None:
        self.failed.append(ItemFailure(path=path, error=str(error)))


@dataclass(slots=True)
class CacheStats:
    total_size: int = 0
    total_files: int = 0
    oldest: Optional[str] = None
    newest: Optional[str] = None


@dataclass(slots=True)
class DeleteResult:
    deleted: List[str] = field(default_factory=list)
    failed: List[ItemFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    backup_dir: Optional[Path] = None
    requested: int = 0
    available: int = 0

    @property
    def shortfall(self) -> int:
        """How many requested deletions could not be attempted because the files were not there."""
        return max(self.requested - self.available, 0)

    def register_failure(self, path: str, error: object) -> None:
        self.failed.append(ItemFailure(path=path, error=str(error)))


@dataclass(slots=True)
class RestoreResult:
    restored: List[str] = field(default_factory=list)
    failed: List[ItemFailure] = field(default_factory=list)

    def register_failure(self, path: str, error: object) -> None:
        self.failed.append(ItemFailure(path=path, error=str(error)))


@dataclass(slots=True)
class CleanupReport:
    started_at: dt.datetime
    cache: Optional[SweepResult] = None
    cache_directory: Optional[SweepResult] = None
    backups: Optional[SweepResult] = None
    vacuumed: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def freed_bytes(self) -> int:
        return sum(
            result.freed_bytes
            for result in (self.cache, self.cache_directory, self.backups)
            if result is not None
        )
