"""Callable operations behind each command.

:class:`ScreenCut` wires the store, cache, backup manager, scheduler and tag
index together from one :class:`~screencut.config.Settings`. Presentation is
left to the caller (see :mod:`screencut.cli`).
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .backup import BackupManager
from .cache import CacheManager
from .cleanup import CleanupScheduler
from .config import Settings
from .file_discovery import gather_screenshots, tracked_file_for
from .models import CleanupReport, DeleteResult, RestoreResult
from .persistence import BackupRecord, DeletedFileRecord, ScreenshotStore, TrackedFile
from .tags import SearchHit, SearchOptions, TagIndex
from .utils import ensure_directory
from .watcher import ScreenshotWatcher

LOGGER = logging.getLogger(__name__)


@dataclass
class ScreenCut:
    settings: Settings
    store: ScreenshotStore
    cache: CacheManager
    backups: BackupManager
    scheduler: CleanupScheduler
    tags: TagIndex

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        clock: Callable[[], dt.datetime] | None = None,
        fallback_source: Callable[[str], Path | None] | None = None,
    ) -> ScreenCut:
        store = ScreenshotStore(settings.db_path)
        cache = CacheManager(store, settings, clock=clock)
        backups = BackupManager(store, cache, settings, clock=clock, fallback_source=fallback_source)
        return cls(
            settings=settings,
            store=store,
            cache=cache,
            backups=backups,
            scheduler=CleanupScheduler(store, cache, backups, settings, clock=clock),
            tags=TagIndex(store),
        )

    def init(self) -> None:
        """Create the data, cache and backup directories and the database.

        Raises:
            StoreError: if the database cannot be initialized.
        """
        ensure_directory(self.settings.data_dir)
        self.cache.ensure_ready()
        self.backups.ensure_ready()

    def close(self) -> None:
        self.store.close()

    def run_scheduled_cleanup(self) -> CleanupReport | None:
        """The pre-command hook: run retention if enabled and due."""
        if not self.settings.cleanup.auto:
            return None
        return self.scheduler.check_and_cleanup()

    def cleanup(self, *, force: bool = False) -> CleanupReport | None:
        return self.scheduler.check_and_cleanup(force=force)

    # -- listing -----------------------------------------------------------------

    def list_screenshots(self) -> list[TrackedFile]:
        """Scan the screenshot directories, record what is found, and drop vanished files.

        Returns:
            Tracked files, most recently modified first.
        """
        for path in gather_screenshots(self.settings.screenshot_dirs, self.settings.screenshot_patterns):
            try:
                self.store.observe_file(tracked_file_for(path))
            except OSError as exc:
                LOGGER.warning("Could not read %s: %s", path, exc)

        files: list[TrackedFile] = []
        for record in self.store.get_all_files():
            if not Path(record.path).exists():
                LOGGER.info("Forgetting missing file %s", record.path)
                self.store.delete_file(record.path)
                continue
            files.append(record)
        files.sort(key=lambda record: record.modified_time or record.last_accessed, reverse=True)
        return files

    def recent_files(self, limit: int = 5) -> list[TrackedFile]:
        return self.cache.get_recent_files(limit)

    # -- deletion and restoration --------------------------------------------------------

    def delete_recent(self, count: int = 1) -> DeleteResult:
        return self.backups.delete_recent(count)

    def delete_paths(self, paths: Iterable[str | Path]) -> DeleteResult:
        return self.backups.delete_files(str(Path(path).expanduser().absolute()) for path in paths)

    def restore_path(self, path: str | Path, *, populate_cache: bool = False) -> RestoreResult:
        target = str(Path(path).expanduser().absolute())
        return self.backups.restore_paths([target], populate_cache=populate_cache)

    def restore_recent(self, count: int, *, populate_cache: bool = False) -> RestoreResult:
        return self.backups.restore_recent(count, populate_cache=populate_cache)

    def restore_deleted(self, *, populate_cache: bool = False) -> RestoreResult:
        return self.backups.restore_deleted(populate_cache=populate_cache)

    def list_backups(self, original_path: str | None = None) -> list[BackupRecord]:
        return self.backups.list_backups(original_path)

    def recently_deleted(self, limit: int = 50) -> list[DeletedFileRecord]:
        return self.store.get_recently_deleted(limit)

    # -- tags --------------------------------------------------------------------------

    def tag(self, path: str | Path, tags: Iterable[str]) -> list[str] | None:
        return self.tags.tag(str(Path(path).expanduser().absolute()), tags)

    def search(self, query: str, options: SearchOptions | None = None) -> list[SearchHit]:
        return self.tags.search(query, options)

    # -- observability --------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        backups = self.store.get_backups()
        # SQLite treats a negative LIMIT as unbounded
        deleted = self.store.get_recently_deleted(limit=-1)
        return {
            "cache": self.cache.get_stats(),
            "index": self.cache.get_cache_stats(),
            "backups": len(backups),
            "backup_bytes": sum(record.size for record in backups),
            "deleted": len(deleted),
            "last_cleanup": self.store.get_last_cleanup_time(),
        }

    def watcher(self) -> ScreenshotWatcher:
        return ScreenshotWatcher(self.store, self.settings)

    def watch(self) -> None:
        """Block, recording new screenshots until interrupted."""
        watcher = self.watcher()
        try:
            watcher.run_forever()
        except KeyboardInterrupt:
            LOGGER.info("Stopping watcher")
            watcher.stop()


__all__ = ["ScreenCut"]
