"""Recoverable deletion, restoration, and backup retention.

A deleted screenshot moves through three states::

    Present --delete--> BackedUp --restore--> Present
                            |
                            +--retention sweep--> Purged

Deletion is write-ahead: the backup copy and its row exist before the origin
file and its tracked-file row are removed. Restoration only ever copies from
an existing backup file; it never recreates a tracked-file row without one.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from .cache import CacheManager, modified_time_of
from .config import Settings
from .errors import FileOperationError, StoreError
from .logging_utils import render_fields_block, render_section_block
from .models import DeleteResult, RestoreResult, SweepResult
from .persistence import BackupRecord, ScreenshotStore, TrackedFile
from .utils import copy_file, ensure_directory, format_size, remove_file, unique_destination, utcnow

LOGGER = logging.getLogger(__name__)

_ITEM_ERRORS = (OSError, FileOperationError, StoreError)


class RestoreError(FileOperationError):
    """Raised when a single path cannot be restored."""


class BackupManager:
    """Makes deletions recoverable and keeps the backup store bounded."""

    def __init__(
        self,
        store: ScreenshotStore,
        cache: CacheManager,
        settings: Settings,
        *,
        clock: Callable[[], dt.datetime] | None = None,
        fallback_source: Callable[[str], Path | None] | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._settings = settings.backups
        self._clock = clock or utcnow
        # Consulted for a restorable copy (e.g. the system Trash) when no backup file is usable
        self._fallback_source = fallback_source

    @property
    def backup_root(self) -> Path:
        return self._settings.directory

    def ensure_ready(self) -> None:
        ensure_directory(self.backup_root)
        self._store.init()

    def backup_dir_for(self, moment: dt.datetime) -> Path:
        return self.backup_root / moment.astimezone(dt.UTC).date().isoformat()

    # -- deletion ------------------------------------------------------------------

    def delete_files(self, paths: Iterable[str | Path]) -> DeleteResult:
        """Back up and delete each path; one failure never stops the batch."""
        targets = [str(path) for path in paths]
        now = self._clock()
        backup_dir = self.backup_dir_for(now)
        result = DeleteResult(backup_dir=backup_dir, requested=len(targets))

        for target in targets:
            if not Path(target).is_file():
                LOGGER.info("Skipping non-existent file: %s", target)
                result.skipped.append(target)
                continue
            try:
                self._delete_one(target, backup_dir)
            except _ITEM_ERRORS as exc:
                LOGGER.error("Failed to delete %s: %s", target, exc)
                result.register_failure(target, exc)
                continue
            result.deleted.append(target)

        result.available = len(targets) - len(result.skipped)
        LOGGER.info(
            render_section_block(
                "Deletion Summary",
                {
                    "Deleted": len(result.deleted),
                    "Failed": len(result.failed),
                    "Skipped": len(result.skipped),
                    "Backups": backup_dir,
                },
                [("Failures", [str(failure) for failure in result.failed])] if result.failed else [],
            )
        )
        return result

    def _delete_one(self, target: str, backup_dir: Path) -> None:
        origin = Path(target)
        size = origin.stat().st_size
        ensure_directory(backup_dir)
        backup_path = unique_destination(
            backup_dir,
            origin.name,
            taken=lambda candidate: self._store.backup_path_exists(str(candidate)),
        )

        LOGGER.debug("Backing up %s to %s", target, backup_path)
        copy_file(origin, backup_path)
        try:
            self._store.add_backup(
                BackupRecord(
                    original_path=target,
                    backup_path=str(backup_path),
                    size=size,
                    created_at=self._clock(),
                )
            )
        except StoreError:
            # Origin is untouched; do not leave an unrecorded copy behind
            remove_file(backup_path)
            raise

        # Backup is durable from here on; a failure below leaves it restorable
        remove_file(origin)
        self._store.add_deleted_file(target, str(backup_path), size, deleted_at=self._clock())
        self._store.delete_file(target)
        self._cache.delete_from_cache(target)
        LOGGER.debug("Deleted %s", target)

    def delete_recent(self, count: int) -> DeleteResult:
        """Delete the ``count`` most recently accessed tracked files."""
        if count <= 0:
            raise ValueError("count must be a positive number")
        recent = self._cache.get_recent_files(count)
        result = self.delete_files(record.path for record in recent)
        result.requested = count
        if len(recent) < count:
            LOGGER.info("Only %d tracked file(s) were available (requested: %d)", len(recent), count)
        return result

    # -- restoration -------------------------------------------------------------------

    def _recorded_backup(self, path: str) -> str | None:
        marker = self._store.get_deleted_file(path)
        if marker is not None:
            return marker.backup_path
        backups = self._store.get_backups(path)
        if backups:
            return backups[0].backup_path
        return None

    def _source_for(self, path: str) -> Path:
        backup_path = self._recorded_backup(path)
        if backup_path is not None and Path(backup_path).is_file():
            return Path(backup_path)
        if self._fallback_source is not None:
            fallback = self._fallback_source(path)
            if fallback is not None and Path(fallback).is_file():
                LOGGER.info("Restoring %s from fallback copy %s", path, fallback)
                return Path(fallback)
        if backup_path is None:
            raise RestoreError(f"No backup recorded for {path}", path=path)
        raise RestoreError(f"Backup file is missing: {backup_path}", path=path)

    def restore_path(
        self,
        path: str | Path,
        *,
        populate_cache: bool = False,
        overwrite: bool = False,
    ) -> Path:
        """Copy the latest backup of ``path`` back to where it was.

        When the recorded backup file is gone, the optional fallback source is
        asked for another copy before giving up.

        Raises:
            RestoreError: if there is no backup, the backup file is gone, or the
                target already exists and ``overwrite`` is false.
            StoreError: if recording the restored file fails.
        """
        target = str(path)
        source = self._source_for(target)

        destination = Path(target)
        if destination.exists() and not overwrite:
            raise RestoreError(f"Refusing to overwrite existing file: {target}", path=target)

        copy_file(source, destination)
        size = destination.stat().st_size
        self._store.add_file(
            TrackedFile(
                path=target,
                size=size,
                last_accessed=self._clock(),
                modified_time=modified_time_of(destination),
            )
        )
        self._store.remove_from_deleted_files(target)
        if populate_cache:
            try:
                self._cache.add_to_cache(target, size)
            except FileOperationError as exc:
                LOGGER.warning("Restored %s but could not cache it: %s", target, exc)
        LOGGER.debug("Restored %s from %s", target, source)
        return destination

    def _restore_many(self, paths: Iterable[str], *, populate_cache: bool) -> RestoreResult:
        result = RestoreResult()
        for path in paths:
            try:
                self.restore_path(path, populate_cache=populate_cache)
            except _ITEM_ERRORS as exc:
                LOGGER.error("Failed to restore %s: %s", path, exc)
                result.register_failure(path, exc)
                continue
            result.restored.append(path)

        LOGGER.info(
            render_section_block(
                "Restore Summary",
                {"Restored": len(result.restored), "Failed": len(result.failed)},
                [("Failures", [str(failure) for failure in result.failed])] if result.failed else [],
            )
        )
        return result

    def restore_paths(self, paths: Iterable[str | Path], *, populate_cache: bool = False) -> RestoreResult:
        return self._restore_many((str(path) for path in paths), populate_cache=populate_cache)

    def restore_recent(self, count: int, *, populate_cache: bool = False) -> RestoreResult:
        """Restore the ``count`` most recently deleted paths."""
        if count <= 0:
            raise ValueError("count must be a positive number")
        markers = self._store.get_recently_deleted(count)
        return self._restore_many((marker.path for marker in markers), populate_cache=populate_cache)

    def restore_deleted(self, limit: int = 50, *, populate_cache: bool = False) -> RestoreResult:
        """Restore every recently deleted path, newest deletion first."""
        markers = self._store.get_recently_deleted(limit)
        return self._restore_many((marker.path for marker in markers), populate_cache=populate_cache)

    def list_backups(self, original_path: str | None = None) -> list[BackupRecord]:
        return self._store.get_backups(original_path)

    # -- retention -----------------------------------------------------------------------

    def cleanup_backups(self, now: dt.datetime | None = None) -> SweepResult:
        """Apply the backup retention policy.

        Backups are ranked newest first. Only those ranked beyond ``max_sets``
        are candidates, and a candidate is purged only if it is also older
        than ``max_age``. The newest ``max_sets`` backups are never purged.
        Purging removes the file, the backup row, and any deletion marker
        that points at the same file.
        """
        now = now or self._clock()
        result = SweepResult()
        backups = sorted(self._store.get_backups(), key=lambda record: record.created_at, reverse=True)
        candidates = backups[self._settings.max_sets:]

        for backup in candidates:
            if now - backup.created_at <= self._settings.max_age:
                continue
            try:
                remove_file(Path(backup.backup_path))
                self._store.remove_backup(backup.backup_path)
                self._store.remove_deleted_by_backup(backup.backup_path)
            except _ITEM_ERRORS as exc:
                LOGGER.error("Error deleting backup %s: %s", backup.backup_path, exc)
                result.register_failure(backup.backup_path, exc)
                continue
            result.register_removed(backup.backup_path, backup.size)

        LOGGER.info(
            render_fields_block(
                "Backup Sweep",
                {
                    "Backups": len(backups),
                    "Candidates": len(candidates),
                    "Purged": len(result.removed),
                    "Failed": len(result.failed),
                    "Freed": format_size(result.freed_bytes),
                },
            )
        )
        return result

    def vacuum_database(self) -> bool:
        """Compact the store. Failures are logged, not raised."""
        try:
            self._store.vacuum()
        except StoreError as exc:
            LOGGER.error("Error vacuuming database: %s", exc)
            return False
        LOGGER.info("Database vacuumed successfully")
        return True


__all__ = ["BackupManager", "RestoreError"]
