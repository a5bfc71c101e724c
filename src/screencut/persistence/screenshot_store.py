"""SQLite-backed store for the screenshot lifecycle.

The store holds tracked files, backups, deleted-file markers, key/value
settings and file tags. Every other component keeps its durable state here.

All writes (and ``VACUUM``) run under one in-process lock and inside a single
transaction per call. The database is not safe for two processes writing the
same data directory at the same time.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from ..errors import NotInitializedError, StoreError
from ..utils import utcnow

LOGGER = logging.getLogger(__name__)

LAST_CLEANUP_KEY = "lastCleanupTime"


def _adapt_datetime(value: datetime) -> str:
    """Store datetimes as UTC ISO strings with a fixed width so text order is time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _convert_datetime(data: bytes) -> datetime:
    parsed = datetime.fromisoformat(data.decode("utf-8"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("TIMESTAMP", _convert_datetime)


@dataclass
class TrackedFile:
    """An origin file known to the system.

    Attributes:
        path: Absolute path of the origin file (unique key)
        size: Size in bytes when last observed
        last_accessed: When the file was last observed or served from the cache
        modified_time: Filesystem modification time, if known
    """

    path: str
    size: int
    last_accessed: datetime
    modified_time: datetime | None = None

    @property
    def name(self) -> str:
        return Path(self.path).name


@dataclass
class BackupRecord:
    """A point-in-time copy of a deleted origin file."""

    original_path: str
    backup_path: str
    size: int
    created_at: datetime
    id: int | None = None


@dataclass
class DeletedFileRecord:
    """The most recent deletion of a path."""

    path: str
    deleted_at: datetime
    backup_path: str
    size: int


class ScreenshotStore:
    """SQLite-backed store for tracked files, backups and deletion markers.

    Example:
        store = ScreenshotStore(Path("~/.config/screen-cut/screen_cut.db"))
        store.init()
        store.add_file(TrackedFile(path="/Users/me/Desktop/shot.png", size=1024, last_accessed=utcnow()))
    """

    SCHEMA_VERSION = 2

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._local = threading.local()
        self._write_lock = threading.RLock()
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def initialized(self) -> bool:
        return self._initialized

    # -- connection management -------------------------------------------------

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self._db_path,
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA journal_mode=WAL")
        return connection

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the connection for the current thread."""
        if not self._initialized:
            raise NotInitializedError(f"Store at {self._db_path} accessed before init()")
        if getattr(self._local, "connection", None) is None:
            self._local.connection = self._open_connection()
        return self._local.connection

    @contextmanager
    def _writing(self, operation: str, key: str | None) -> Iterator[sqlite3.Connection]:
        conn = self._get_connection()
        with self._write_lock:
            try:
                with conn:
                    yield conn
            except sqlite3.Error as exc:
                LOGGER.error("Failed to %s for %s: %s", operation, key, exc)
                raise StoreError(f"Failed to {operation} for {key}: {exc}", key=key) from exc

    @contextmanager
    def _reading(self, operation: str, key: str | None = None) -> Iterator[sqlite3.Connection]:
        conn = self._get_connection()
        try:
            yield conn
        except sqlite3.Error as exc:
            LOGGER.error("Failed to %s for %s: %s", operation, key, exc)
            raise StoreError(f"Failed to {operation} for {key}: {exc}", key=key) from exc

    def init(self) -> None:
        """Create the database and its tables. Safe to call any number of times.

        Raises:
            StoreError: if the database cannot be created or migrated.
        """
        with self._write_lock:
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                if getattr(self._local, "connection", None) is None:
                    self._local.connection = self._open_connection()
                self._initialized = True
                self._init_schema(self._local.connection)
            except (OSError, sqlite3.Error) as exc:
                self._initialized = False
                raise StoreError(
                    f"Unable to initialize database at {self._db_path}: {exc}",
                    key=str(self._db_path),
                ) from exc
        LOGGER.debug("Database ready at %s", self._db_path)

    ensure_ready = init

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)")
        row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        current_version = row["version"] if row else 0
        if current_version < self.SCHEMA_VERSION:
            self._migrate_schema(conn, current_version)

    def _migrate_schema(self, conn: sqlite3.Connection, from_version: int) -> None:
        with conn:
            if from_version < 1:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS files (
                        path TEXT PRIMARY KEY,
                        size INTEGER NOT NULL DEFAULT 0,
                        mtime TIMESTAMP,
                        last_accessed TIMESTAMP NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS backups (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        original_path TEXT NOT NULL,
                        backup_path TEXT NOT NULL,
                        backup_time TIMESTAMP NOT NULL,
                        size INTEGER NOT NULL DEFAULT 0
                    )
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS deleted_files (
                        path TEXT PRIMARY KEY,
                        deleted_at TIMESTAMP NOT NULL,
                        backup_path TEXT NOT NULL,
                        size INTEGER NOT NULL DEFAULT 0
                    )
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS settings (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP NOT NULL
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_deleted_at ON deleted_files(deleted_at)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_backup_path ON deleted_files(backup_path)")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_original_path ON backups(original_path)")

            if from_version < 2:
                # Schema v2: tags live next to the files they describe
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS file_tags (
                        path TEXT NOT NULL,
                        tag TEXT NOT NULL,
                        tagged_at TIMESTAMP NOT NULL,
                        PRIMARY KEY (path, tag)
                    )
                """)
                conn.execute("CREATE INDEX IF NOT EXISTS idx_file_tags_tag ON file_tags(tag)")

            conn.execute("DELETE FROM schema_version")
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,))

    def close(self) -> None:
        """Close the database connection for the current thread."""
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            self._local.connection = None

    # -- tracked files -----------------------------------------------------------

    @staticmethod
    def _row_to_file(row: sqlite3.Row) -> TrackedFile:
        return TrackedFile(
            path=row["path"],
            size=row["size"] or 0,
            last_accessed=row["last_accessed"],
            modified_time=row["mtime"],
        )

    def add_file(self, record: TrackedFile) -> None:
        """Insert or replace a tracked file."""
        with self._writing("add file", record.path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO files (path, size, mtime, last_accessed) VALUES (?, ?, ?, ?)",
                (record.path, record.size, record.modified_time, record.last_accessed),
            )

    def observe_file(self, record: TrackedFile) -> bool:
        """Record a discovered file, keeping the access time of an existing row.

        Returns:
            True if the path was not tracked before.
        """
        with self._writing("observe file", record.path) as conn:
            existed = conn.execute("SELECT 1 FROM files WHERE path = ?", (record.path,)).fetchone() is not None
            conn.execute(
                """
                INSERT INTO files (path, size, mtime, last_accessed) VALUES (?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    size = excluded.size,
                    mtime = excluded.mtime
                """,
                (record.path, record.size, record.modified_time, record.last_accessed),
            )
        return not existed

    def get_file(self, path: str) -> TrackedFile | None:
        with self._reading("get file", path) as conn:
            row = conn.execute("SELECT * FROM files WHERE path = ?", (path,)).fetchone()
        return self._row_to_file(row) if row else None

    def delete_file(self, path: str) -> bool:
        """Delete a tracked file row.

        Returns:
            True if a row was deleted, False if the path was not tracked.
        """
        with self._writing("delete file", path) as conn:
            cursor = conn.execute("DELETE FROM files WHERE path = ?", (path,))
        if cursor.rowcount == 0:
            LOGGER.debug("No tracked file to delete for %s", path)
        return cursor.rowcount > 0

    def update_file_access(self, path: str, timestamp: datetime | None = None) -> bool:
        with self._writing("update file access", path) as conn:
            cursor = conn.execute(
                "UPDATE files SET last_accessed = ? WHERE path = ?",
                (timestamp or utcnow(), path),
            )
        return cursor.rowcount > 0

    def get_files_by_date(self, cutoff: datetime) -> list[TrackedFile]:
        """Tracked files last accessed strictly before ``cutoff``."""
        with self._reading("get files by date") as conn:
            cursor = conn.execute(
                "SELECT * FROM files WHERE last_accessed < ? ORDER BY last_accessed",
                (cutoff,),
            )
            return [self._row_to_file(row) for row in cursor]

    def get_all_files(self) -> list[TrackedFile]:
        with self._reading("get all files") as conn:
            cursor = conn.execute("SELECT * FROM files ORDER BY path")
            return [self._row_to_file(row) for row in cursor]

    def get_recent_files(self, limit: int = 5) -> list[TrackedFile]:
        """Most recently accessed tracked files, newest first."""
        with self._reading("get recent files") as conn:
            cursor = conn.execute(
                "SELECT * FROM files ORDER BY last_accessed DESC, path LIMIT ?",
                (limit,),
            )
            return [self._row_to_file(row) for row in cursor]

    # -- backups -----------------------------------------------------------------

    @staticmethod
    def _row_to_backup(row: sqlite3.Row) -> BackupRecord:
        return BackupRecord(
            id=row["id"],
            original_path=row["original_path"],
            backup_path=row["backup_path"],
            size=row["size"] or 0,
            created_at=row["backup_time"],
        )

    def add_backup(self, record: BackupRecord) -> int:
        """Record a backup and return its id."""
        with self._writing("add backup", record.original_path) as conn:
            cursor = conn.execute(
                "INSERT INTO backups (original_path, backup_path, backup_time, size) VALUES (?, ?, ?, ?)",
                (record.original_path, record.backup_path, record.created_at, record.size),
            )
        record.id = cursor.lastrowid
        return cursor.lastrowid

    def get_backups(self, original_path: str | None = None) -> list[BackupRecord]:
        """Backups newest first, optionally only those of one original path."""
        with self._reading("get backups", original_path) as conn:
            if original_path is None:
                cursor = conn.execute("SELECT * FROM backups ORDER BY backup_time DESC, id DESC")
            else:
                cursor = conn.execute(
                    "SELECT * FROM backups WHERE original_path = ? ORDER BY backup_time DESC, id DESC",
                    (original_path,),
                )
            return [self._row_to_backup(row) for row in cursor]

    def backup_path_exists(self, backup_path: str) -> bool:
        with self._reading("check backup path", backup_path) as conn:
            row = conn.execute("SELECT 1 FROM backups WHERE backup_path = ? LIMIT 1", (backup_path,)).fetchone()
        return row is not None

    def remove_backup(self, backup_path: str) -> int:
        with self._writing("remove backup", backup_path) as conn:
            cursor = conn.execute("DELETE FROM backups WHERE backup_path = ?", (backup_path,))
        return cursor.rowcount

    # -- deleted-file markers ------------------------------------------------------

    @staticmethod
    def _row_to_deleted(row: sqlite3.Row) -> DeletedFileRecord:
        return DeletedFileRecord(
            path=row["path"],
            deleted_at=row["deleted_at"],
            backup_path=row["backup_path"],
            size=row["size"] or 0,
        )

    def add_deleted_file(
        self,
        path: str,
        backup_path: str,
        size: int,
        deleted_at: datetime | None = None,
    ) -> None:
        with self._writing("add deleted file", path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO deleted_files (path, deleted_at, backup_path, size) VALUES (?, ?, ?, ?)",
                (path, deleted_at or utcnow(), backup_path, size),
            )

    def get_deleted_file(self, path: str) -> DeletedFileRecord | None:
        with self._reading("get deleted file", path) as conn:
            row = conn.execute("SELECT * FROM deleted_files WHERE path = ?", (path,)).fetchone()
        return self._row_to_deleted(row) if row else None

    def get_recently_deleted(self, limit: int = 50) -> list[DeletedFileRecord]:
        with self._reading("get recently deleted") as conn:
            cursor = conn.execute(
                "SELECT * FROM deleted_files ORDER BY deleted_at DESC, path LIMIT ?",
                (limit,),
            )
            return [self._row_to_deleted(row) for row in cursor]

    def remove_from_deleted_files(self, path: str) -> bool:
        with self._writing("remove deleted file", path) as conn:
            cursor = conn.execute("DELETE FROM deleted_files WHERE path = ?", (path,))
        return cursor.rowcount > 0

    def remove_deleted_by_backup(self, backup_path: str) -> int:
        """Drop markers that point at ``backup_path``."""
        with self._writing("remove deleted files by backup", backup_path) as conn:
            cursor = conn.execute("DELETE FROM deleted_files WHERE backup_path = ?", (backup_path,))
        return cursor.rowcount

    # -- settings --------------------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        with self._reading("get setting", key) as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        with self._writing("set setting", key) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, utcnow()),
            )

    def get_last_cleanup_time(self) -> datetime | None:
        raw = self.get_setting(LAST_CLEANUP_KEY)
        if not raw:
            return None
        try:
            return _convert_datetime(raw.encode("utf-8"))
        except ValueError:
            LOGGER.warning("Ignoring malformed %s setting: %r", LAST_CLEANUP_KEY, raw)
            return None

    def update_last_cleanup_time(self, timestamp: datetime | None = None) -> None:
        self.set_setting(LAST_CLEANUP_KEY, _adapt_datetime(timestamp or utcnow()))

    # -- tags ------------------------------------------------------------------------

    def add_tags(self, path: str, tags: Iterable[str]) -> None:
        now = utcnow()
        with self._writing("add tags", path) as conn:
            conn.executemany(
                "INSERT OR IGNORE INTO file_tags (path, tag, tagged_at) VALUES (?, ?, ?)",
                [(path, tag, now) for tag in tags],
            )

    def remove_tags(self, path: str, tags: Iterable[str]) -> int:
        with self._writing("remove tags", path) as conn:
            cursor = conn.executemany(
                "DELETE FROM file_tags WHERE path = ? AND tag = ?",
                [(path, tag) for tag in tags],
            )
        return cursor.rowcount

    def get_tags(self, path: str) -> list[str]:
        with self._reading("get tags", path) as conn:
            cursor = conn.execute("SELECT tag FROM file_tags WHERE path = ? ORDER BY tagged_at, tag", (path,))
            return [row["tag"] for row in cursor]

    def get_all_tags(self) -> dict[str, list[str]]:
        with self._reading("get all tags") as conn:
            cursor = conn.execute("SELECT path, tag FROM file_tags ORDER BY path, tagged_at, tag")
            tags: dict[str, list[str]] = {}
            for row in cursor:
                tags.setdefault(row["path"], []).append(row["tag"])
            return tags

    # -- maintenance ---------------------------------------------------------------------

    def vacuum(self) -> None:
        """Compact the database file. Runs while holding the write lock."""
        conn = self._get_connection()
        with self._write_lock:
            try:
                conn.execute("VACUUM")
            except sqlite3.Error as exc:
                raise StoreError(f"Failed to vacuum {self._db_path}: {exc}", key=str(self._db_path)) from exc


__all__ = [
    "BackupRecord",
    "DeletedFileRecord",
    "LAST_CLEANUP_KEY",
    "ScreenshotStore",
    "TrackedFile",
]
