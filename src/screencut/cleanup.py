"""Time-gated retention sweeps.

There is no background scheduler: every invocation asks the
:class:`CleanupScheduler` once whether the configured interval has passed
since ``lastCleanupTime`` and, if so, runs the cache and backup sweeps
followed by a vacuum.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable

from .backup import BackupManager
from .cache import CacheManager
from .config import Settings
from .errors import FileOperationError, StoreError
from .logging_utils import render_fields_block
from .models import CleanupReport
from .persistence import ScreenshotStore
from .utils import format_size, utcnow

LOGGER = logging.getLogger(__name__)


class CleanupScheduler:
    def __init__(
        self,
        store: ScreenshotStore,
        cache: CacheManager,
        backups: BackupManager,
        settings: Settings,
        *,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._backups = backups
        self._settings = settings.cleanup
        self._clock = clock or utcnow

    def is_due(self, now: dt.datetime | None = None) -> bool:
        last = self._store.get_last_cleanup_time()
        if last is None:
            return True
        return (now or self._clock()) - last >= self._settings.interval

    def check_and_cleanup(self, force: bool = False) -> CleanupReport | None:
        """Run the retention sweeps if forced or due.

        Returns:
            The report of the run, or None when nothing was done.
        """
        now = self._clock()
        if not force and not self.is_due(now):
            LOGGER.debug("Cleanup not due yet (last run %s)", self._store.get_last_cleanup_time())
            return None

        report = self.run_cleanup()
        self._store.update_last_cleanup_time(now)
        return report

    def run_cleanup(self) -> CleanupReport:
        """Cache sweep, cache directory prune, backup sweep, then vacuum.

        The steps run one after another so the vacuum never overlaps another
        writer. A failing step is logged and the remaining steps still run.
        """
        report = CleanupReport(started_at=self._clock())
        LOGGER.info("Starting cleanup process")

        try:
            report.cache = self._cache.cleanup()
        except (OSError, FileOperationError, StoreError) as exc:
            LOGGER.error("Error cleaning up cache: %s", exc)
            report.errors.append(f"cache: {exc}")

        try:
            report.cache_directory = self._cache.prune_directory()
        except (OSError, FileOperationError) as exc:
            LOGGER.error("Error pruning cache directory: %s", exc)
            report.errors.append(f"cache directory: {exc}")

        try:
            report.backups = self._backups.cleanup_backups(report.started_at)
        except StoreError as exc:
            LOGGER.error("Error cleaning up backups: %s", exc)
            report.errors.append(f"backups: {exc}")

        report.vacuumed = self._backups.vacuum_database()
        if not report.vacuumed:
            report.errors.append("vacuum failed")

        LOGGER.info(
            render_fields_block(
                "Cleanup Completed",
                {
                    "Cache expired": len(report.cache.removed) if report.cache else "-",
                    "Cache pruned": len(report.cache_directory.removed) if report.cache_directory else "-",
                    "Backups purged": len(report.backups.removed) if report.backups else "-",
                    "Freed": format_size(report.freed_bytes),
                    "Vacuumed": "yes" if report.vacuumed else "no",
                },
            )
        )
        return report


__all__ = ["CleanupScheduler"]
