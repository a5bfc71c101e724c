"""Persistence layer for the screenshot lifecycle.

Public API:
- ScreenshotStore: SQLite-backed store for every durable record
- TrackedFile: An origin file known to the system
- BackupRecord: A copy of a deleted origin file
- DeletedFileRecord: The most recent deletion of a path

Example:
    from screencut.persistence import ScreenshotStore, TrackedFile

    store = ScreenshotStore(Path("/path/to/screen_cut.db"))
    store.init()
    store.add_file(TrackedFile(path="/Desktop/shot.png", size=1024, last_accessed=utcnow()))
"""

from .screenshot_store import (
    LAST_CLEANUP_KEY,
    BackupRecord,
    DeletedFileRecord,
    ScreenshotStore,
    TrackedFile,
)

__all__ = [
    "BackupRecord",
    "DeletedFileRecord",
    "LAST_CLEANUP_KEY",
    "ScreenshotStore",
    "TrackedFile",
]
