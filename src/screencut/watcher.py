from __future__ import annotations

import logging
import re
import threading
from collections.abc import Sequence
from pathlib import Path
from queue import Empty, Queue

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .config import Settings
from .errors import StoreError
from .file_discovery import gather_screenshots, is_screenshot, skip_reason, tracked_file_for
from .persistence import ScreenshotStore

LOGGER = logging.getLogger(__name__)


class _ScreenshotEventHandler(FileSystemEventHandler):
    """Pushes newly observed screenshot paths onto a queue."""

    def __init__(self, queue: Queue[Path], patterns: Sequence[re.Pattern[str]]) -> None:
        self._queue = queue
        self._patterns = list(patterns)

    def on_created(self, event) -> None:  # type: ignore[override]
        if getattr(event, "is_directory", False):
            return
        self._emit(Path(event.src_path))

    def on_moved(self, event) -> None:  # type: ignore[override]
        if getattr(event, "is_directory", False):
            return
        self._emit(Path(event.dest_path))

    def _emit(self, path: Path) -> None:
        if skip_reason(path) or not is_screenshot(path.name, self._patterns):
            return
        self._queue.put(path)


class ScreenshotWatcher:
    """Watches screenshot directories and records new screenshots.

    Events are queued by the observer thread and written to the store by the
    thread running :meth:`run_forever`, so store writes never interleave.
    """

    def __init__(self, store: ScreenshotStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings
        self._queue: Queue[Path] = Queue()
        self._handler = _ScreenshotEventHandler(self._queue, settings.screenshot_patterns)
        self._stop = threading.Event()
        self._observer = Observer()
        self._roots = [path for path in settings.screenshot_dirs if path.is_dir()]
        for root in self._roots:
            self._observer.schedule(self._handler, str(root), recursive=False)
        self.recorded: list[Path] = []

    @property
    def roots(self) -> list[Path]:
        return list(self._roots)

    def stop(self) -> None:
        self._stop.set()

    def enqueue_existing(self) -> int:
        """Queue screenshots already present in the watched directories."""
        count = 0
        for path in gather_screenshots(self._roots, self._settings.screenshot_patterns):
            self._queue.put(path)
            count += 1
        return count

    def process_pending(self) -> int:
        """Record every queued path; returns how many new files were tracked."""
        added = 0
        while True:
            try:
                path = self._queue.get_nowait()
            except Empty:
                return added
            if self._record(path):
                added += 1

    def _record(self, path: Path) -> bool:
        try:
            is_new = self._store.observe_file(tracked_file_for(path))
        except FileNotFoundError:
            LOGGER.debug("Screenshot vanished before it could be recorded: %s", path)
            return False
        except (OSError, StoreError) as exc:
            LOGGER.error("Error processing screenshot %s: %s", path, exc)
            return False
        if is_new:
            self.recorded.append(path)
            LOGGER.info("New screenshot detected: %s", path.name)
        return is_new

    def run_forever(self) -> None:
        if not self._roots:
            LOGGER.warning("No screenshot directories exist; nothing to watch.")
            return
        self._store.init()
        if self._settings.file_watcher.initial_scan:
            self.enqueue_existing()

        self._observer.start()
        LOGGER.info("Watching directories: %s", ", ".join(str(path) for path in self._roots))
        timeout = max(self._settings.file_watcher.debounce_seconds, 0.05)
        try:
            while not self._stop.is_set():
                try:
                    path = self._queue.get(timeout=timeout)
                except Empty:
                    continue
                self._record(path)
                self.process_pending()
        finally:
            self._observer.stop()
            self._observer.join(timeout=5)


__all__ = ["ScreenshotWatcher"]
