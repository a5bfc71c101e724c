"""Private cache copies of tracked screenshots.

Each origin file gets at most one canonical cache artifact named after its
path plus a millisecond creation stamp (``_Users_me_Desktop_shot.png_1700000000000``).
Stale duplicates can exist for a while; lookups prefer the oldest stamp that
still exists on disk.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
import re
from collections.abc import Callable
from pathlib import Path

from .config import Settings
from .errors import FileOperationError, StoreError
from .logging_utils import render_fields_block
from .models import CacheStats, SweepResult
from .persistence import ScreenshotStore, TrackedFile
from .utils import copy_file, ensure_directory, format_size, remove_file, utcnow

LOGGER = logging.getLogger(__name__)

_SEPARATOR_PATTERN = re.compile(r"[/\\]")


def safe_cache_prefix(origin_path: str | Path) -> str:
    """Flatten an origin path into a single file name component."""
    return _SEPARATOR_PATTERN.sub("_", str(origin_path))


def modified_time_of(path: Path) -> dt.datetime | None:
    try:
        return dt.datetime.fromtimestamp(path.stat().st_mtime, tz=dt.UTC)
    except OSError:
        return None


class CacheManager:
    """Materializes and serves cache copies of tracked files."""

    def __init__(
        self,
        store: ScreenshotStore,
        settings: Settings,
        *,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self._store = store
        self._settings = settings.cache
        self._clock = clock or utcnow

    @property
    def cache_dir(self) -> Path:
        return self._settings.directory

    def ensure_ready(self) -> None:
        ensure_directory(self.cache_dir)
        self._store.init()

    # -- naming --------------------------------------------------------------------

    def cache_name(self, origin_path: str, stamp: int | None = None) -> str:
        """Artifact name for ``origin_path``; ``stamp`` defaults to now in epoch milliseconds."""
        if stamp is None:
            stamp = int(self._clock().timestamp() * 1000)
        return f"{safe_cache_prefix(origin_path)}_{stamp}"

    def _new_cache_path(self, origin_path: str) -> Path:
        stamp = int(self._clock().timestamp() * 1000)
        candidate = self.cache_dir / self.cache_name(origin_path, stamp)
        while candidate.exists():
            stamp += 1
            candidate = self.cache_dir / self.cache_name(origin_path, stamp)
        return candidate

    def find_cache_files(self, origin_path: str) -> list[Path]:
        """All artifacts of ``origin_path``, oldest stamp first."""
        if not self.cache_dir.is_dir():
            return []
        pattern = re.compile(re.escape(safe_cache_prefix(origin_path)) + r"_(\d+)")
        matches: list[tuple[int, Path]] = []
        for entry in self.cache_dir.iterdir():
            match = pattern.fullmatch(entry.name)
            if match and entry.is_file():
                matches.append((int(match.group(1)), entry))
        return [path for _, path in sorted(matches)]

    def find_cache_file(self, origin_path: str) -> Path | None:
        for candidate in self.find_cache_files(origin_path):
            if candidate.exists():
                return candidate
        return None

    # -- cache operations ------------------------------------------------------------

    def _materialize(self, origin: Path, cache_path: Path) -> None:
        copy_file(origin, cache_path)
        # Directory pruning ages artifacts by mtime, so stamp the creation time
        # instead of the origin's modification time kept by the copy.
        stamp = self._clock().timestamp()
        try:
            os.utime(cache_path, (stamp, stamp))
        except OSError as exc:
            raise FileOperationError(f"Unable to stamp {cache_path}: {exc}", path=cache_path) from exc

    def add_to_cache(self, origin_path: str, size: int) -> Path:
        """Copy ``origin_path`` into the cache and mark it as just accessed.

        Raises:
            FileOperationError: if the origin cannot be read or the copy fails.
        """
        origin = Path(origin_path)
        cache_path = self._new_cache_path(str(origin_path))
        self._materialize(origin, cache_path)
        self._store.add_file(
            TrackedFile(
                path=str(origin_path),
                size=size,
                last_accessed=self._clock(),
                modified_time=modified_time_of(origin),
            )
        )
        LOGGER.debug("Cached %s as %s", origin_path, cache_path.name)
        return cache_path

    def get_from_cache(self, origin_path: str) -> Path | None:
        """Return the cache artifact of a tracked file, creating it if needed.

        Returns None when the path is not tracked, or when the origin has
        vanished; in the latter case the stale tracked-file row is dropped.
        """
        key = str(origin_path)
        if self._store.get_file(key) is None:
            return None

        cache_path = self.find_cache_file(key)
        if cache_path is None:
            origin = Path(key)
            if not origin.exists():
                LOGGER.info("Origin %s no longer exists; forgetting it", key)
                self._store.delete_file(key)
                return None
            cache_path = self._new_cache_path(key)
            self._materialize(origin, cache_path)

        self._store.update_file_access(key, self._clock())
        return cache_path

    def remove_from_cache(self, origin_path: str) -> bool:
        """Forget the tracked-file row. Artifacts on disk are left alone."""
        key = str(origin_path)
        if self._store.get_file(key) is None:
            return False
        return self._store.delete_file(key)

    def delete_from_cache(self, origin_path: str) -> int:
        """Remove every on-disk artifact of ``origin_path``; returns bytes freed."""
        freed = 0
        for artifact in self.find_cache_files(str(origin_path)):
            try:
                size = artifact.stat().st_size
            except OSError:
                size = 0
            if remove_file(artifact):
                freed += size
        return freed

    def get_recent_files(self, limit: int = 5) -> list[TrackedFile]:
        return self._store.get_recent_files(limit)

    # -- retention ---------------------------------------------------------------------

    def cleanup(self, max_age: dt.timedelta | None = None) -> SweepResult:
        """Drop tracked files (and their artifacts) not accessed within ``max_age``."""
        age = max_age if max_age is not None else self._settings.expiration
        cutoff = self._clock() - age
        result = SweepResult()

        for record in self._store.get_files_by_date(cutoff):
            try:
                freed = self.delete_from_cache(record.path)
                self._store.delete_file(record.path)
            except (FileOperationError, StoreError) as exc:
                LOGGER.warning("Failed to expire cache entry %s: %s", record.path, exc)
                result.register_failure(record.path, exc)
                continue
            result.register_removed(record.path, freed)

        LOGGER.info(
            render_fields_block(
                "Cache Sweep",
                {
                    "Cutoff": cutoff.isoformat(timespec="seconds"),
                    "Expired": len(result.removed),
                    "Failed": len(result.failed),
                    "Freed": format_size(result.freed_bytes),
                },
            )
        )
        return result

    def prune_directory(
        self,
        max_age: dt.timedelta | None = None,
        max_size: int | None = None,
    ) -> SweepResult:
        """Remove cache files older than ``max_age``, then the oldest until under ``max_size`` bytes."""
        age = max_age if max_age is not None else self._settings.max_age
        limit = max_size if max_size is not None else self._settings.max_size
        result = SweepResult()
        if not self.cache_dir.is_dir():
            return result

        now = self._clock()
        survivors: list[tuple[float, int, Path]] = []
        for entry in self.cache_dir.iterdir():
            try:
                if not entry.is_file():
                    continue
                stat = entry.stat()
                modified = dt.datetime.fromtimestamp(stat.st_mtime, tz=dt.UTC)
                if now - modified > age:
                    remove_file(entry)
                    result.register_removed(str(entry), stat.st_size)
                else:
                    survivors.append((stat.st_mtime, stat.st_size, entry))
            except (OSError, FileOperationError) as exc:
                LOGGER.warning("Failed to prune cache file %s: %s", entry, exc)
                result.register_failure(str(entry), exc)

        total = sum(size for _, size, _ in survivors)
        for _, size, entry in sorted(survivors, key=lambda item: item[0]):
            if total <= limit:
                break
            try:
                remove_file(entry)
            except FileOperationError as exc:
                LOGGER.warning("Failed to prune cache file %s: %s", entry, exc)
                result.register_failure(str(entry), exc)
                continue
            total -= size
            result.register_removed(str(entry), size)

        if result.removed or result.failed:
            LOGGER.info(
                "Pruned %d cache file(s) (%s) from %s",
                len(result.removed),
                format_size(result.freed_bytes),
                self.cache_dir,
            )
        return result

    # -- statistics ----------------------------------------------------------------------

    def get_stats(self) -> CacheStats:
        """Statistics of the cache directory itself, ordered by modification time."""
        if not self.cache_dir.is_dir():
            return CacheStats()
        entries: list[tuple[float, int, str]] = []
        for entry in self.cache_dir.iterdir():
            try:
                if entry.is_file():
                    stat = entry.stat()
                    entries.append((stat.st_mtime, stat.st_size, entry.name))
            except OSError:
                continue
        if not entries:
            return CacheStats()
        entries.sort()
        return CacheStats(
            total_size=sum(size for _, size, _ in entries),
            total_files=len(entries),
            oldest=entries[0][2],
            newest=entries[-1][2],
        )

    def get_cache_stats(self) -> CacheStats:
        """Statistics of the tracked-file index, ordered by last access."""
        files = sorted(self._store.get_all_files(), key=lambda record: record.last_accessed)
        if not files:
            return CacheStats()
        return CacheStats(
            total_size=sum(record.size for record in files),
            total_files=len(files),
            oldest=files[0].path,
            newest=files[-1].path,
        )


__all__ = ["CacheManager", "modified_time_of", "safe_cache_prefix"]
