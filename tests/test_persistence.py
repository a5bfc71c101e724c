"""Tests for the SQLite screenshot store."""

import datetime as dt
import sqlite3
from pathlib import Path

import pytest

from screencut.errors import NotInitializedError
from screencut.persistence import (
    LAST_CLEANUP_KEY,
    BackupRecord,
    ScreenshotStore,
    TrackedFile,
)

T0 = dt.datetime(2024, 5, 1, 12, 0, 0, tzinfo=dt.UTC)


def _file(path: str, *, accessed: dt.datetime = T0, size: int = 100) -> TrackedFile:
    return TrackedFile(path=path, size=size, last_accessed=accessed, modified_time=T0 - dt.timedelta(hours=1))


class TestInitialization:
    def test_init_creates_tables(self, tmp_path: Path) -> None:
        store = ScreenshotStore(tmp_path / "nested" / "screen_cut.db")
        store.init()

        conn = sqlite3.connect(tmp_path / "nested" / "screen_cut.db")
        try:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
            version = conn.execute("SELECT version FROM schema_version").fetchone()[0]
        finally:
            conn.close()
            store.close()

        assert {"files", "backups", "deleted_files", "settings", "file_tags"} <= tables
        assert version == ScreenshotStore.SCHEMA_VERSION

    def test_init_is_idempotent(self, store: ScreenshotStore) -> None:
        store.add_file(_file("/shots/a.png"))

        store.init()
        store.init()

        assert store.get_file("/shots/a.png") is not None

    def test_access_before_init_raises(self, tmp_path: Path) -> None:
        store = ScreenshotStore(tmp_path / "screen_cut.db")

        with pytest.raises(NotInitializedError):
            store.get_file("/shots/a.png")


class TestTrackedFiles:
    def test_add_and_get_round_trips_timestamps(self, store: ScreenshotStore) -> None:
        store.add_file(_file("/shots/a.png"))

        record = store.get_file("/shots/a.png")

        assert record is not None
        assert record.size == 100
        assert record.last_accessed == T0
        assert record.modified_time == T0 - dt.timedelta(hours=1)
        assert record.name == "a.png"

    def test_get_missing_returns_none(self, store: ScreenshotStore) -> None:
        assert store.get_file("/nope.png") is None

    def test_add_file_replaces_existing_row(self, store: ScreenshotStore) -> None:
        store.add_file(_file("/shots/a.png", size=1))
        store.add_file(_file("/shots/a.png", size=2))

        assert len(store.get_all_files()) == 1
        assert store.get_file("/shots/a.png").size == 2

    def test_observe_file_keeps_last_accessed(self, store: ScreenshotStore) -> None:
        assert store.observe_file(_file("/shots/a.png", accessed=T0, size=1)) is True

        later = T0 + dt.timedelta(days=3)
        assert store.observe_file(_file("/shots/a.png", accessed=later, size=5)) is False

        record = store.get_file("/shots/a.png")
        assert record.size == 5
        assert record.last_accessed == T0

    def test_delete_file_reports_whether_a_row_existed(self, store: ScreenshotStore) -> None:
        store.add_file(_file("/shots/a.png"))

        assert store.delete_file("/shots/a.png") is True
        assert store.delete_file("/shots/a.png") is False
        assert store.get_file("/shots/a.png") is None

    def test_update_file_access(self, store: ScreenshotStore) -> None:
        store.add_file(_file("/shots/a.png"))
        later = T0 + dt.timedelta(minutes=5)

        assert store.update_file_access("/shots/a.png", later) is True
        assert store.update_file_access("/shots/missing.png", later) is False
        assert store.get_file("/shots/a.png").last_accessed == later

    def test_get_files_by_date_is_strictly_before_cutoff(self, store: ScreenshotStore) -> None:
        store.add_file(_file("/old.png", accessed=T0 - dt.timedelta(days=10)))
        store.add_file(_file("/edge.png", accessed=T0))
        store.add_file(_file("/new.png", accessed=T0 + dt.timedelta(days=1)))

        stale = store.get_files_by_date(T0)

        assert [record.path for record in stale] == ["/old.png"]

    def test_get_recent_files_orders_by_last_access(self, store: ScreenshotStore) -> None:
        for offset, name in enumerate(["a", "b", "c"]):
            store.add_file(_file(f"/{name}.png", accessed=T0 + dt.timedelta(minutes=offset)))

        recent = store.get_recent_files(2)

        assert [record.path for record in recent] == ["/c.png", "/b.png"]

    def test_microsecond_ordering_is_preserved(self, store: ScreenshotStore) -> None:
        store.add_file(_file("/a.png", accessed=T0 + dt.timedelta(microseconds=1)))
        store.add_file(_file("/b.png", accessed=T0))

        assert [record.path for record in store.get_recent_files(2)] == ["/a.png", "/b.png"]


class TestBackupsAndMarkers:
    def test_backups_are_returned_newest_first(self, store: ScreenshotStore) -> None:
        older = BackupRecord("/shots/a.png", "/backup/a.png", 10, T0)
        newer = BackupRecord("/shots/a.png", "/backup/a (1).png", 10, T0 + dt.timedelta(hours=1))
        other = BackupRecord("/shots/b.png", "/backup/b.png", 10, T0 + dt.timedelta(hours=2))
        for record in (older, newer, other):
            store.add_backup(record)

        assert [b.backup_path for b in store.get_backups()] == ["/backup/b.png", "/backup/a (1).png", "/backup/a.png"]
        assert [b.backup_path for b in store.get_backups("/shots/a.png")] == ["/backup/a (1).png", "/backup/a.png"]
        assert older.id is not None

    def test_remove_backup(self, store: ScreenshotStore) -> None:
        store.add_backup(BackupRecord("/shots/a.png", "/backup/a.png", 10, T0))

        assert store.backup_path_exists("/backup/a.png") is True
        assert store.remove_backup("/backup/a.png") == 1
        assert store.get_backups() == []
        assert store.backup_path_exists("/backup/a.png") is False

    def test_deleted_markers_keep_latest_deletion(self, store: ScreenshotStore) -> None:
        store.add_deleted_file("/shots/a.png", "/backup/a.png", 10, deleted_at=T0)
        store.add_deleted_file("/shots/a.png", "/backup/a (1).png", 11, deleted_at=T0 + dt.timedelta(hours=1))

        marker = store.get_deleted_file("/shots/a.png")

        assert marker.backup_path == "/backup/a (1).png"
        assert marker.size == 11
        assert len(store.get_recently_deleted()) == 1

    def test_recently_deleted_is_newest_first_and_limited(self, store: ScreenshotStore) -> None:
        for offset in range(3):
            store.add_deleted_file(f"/shots/{offset}.png", f"/backup/{offset}.png", 1, deleted_at=T0 + dt.timedelta(minutes=offset))

        recent = store.get_recently_deleted(limit=2)

        assert [marker.path for marker in recent] == ["/shots/2.png", "/shots/1.png"]

    def test_remove_markers(self, store: ScreenshotStore) -> None:
        store.add_deleted_file("/shots/a.png", "/backup/a.png", 1, deleted_at=T0)
        store.add_deleted_file("/shots/b.png", "/backup/b.png", 1, deleted_at=T0)

        assert store.remove_from_deleted_files("/shots/a.png") is True
        assert store.remove_deleted_by_backup("/backup/b.png") == 1
        assert store.get_recently_deleted() == []


class TestSettingsAndTags:
    def test_settings_round_trip(self, store: ScreenshotStore) -> None:
        assert store.get_setting("missing") is None

        store.set_setting("theme", "dark")
        store.set_setting("theme", "light")

        assert store.get_setting("theme") == "light"

    def test_last_cleanup_time(self, store: ScreenshotStore) -> None:
        assert store.get_last_cleanup_time() is None

        store.update_last_cleanup_time(T0)

        assert store.get_last_cleanup_time() == T0
        assert store.get_setting(LAST_CLEANUP_KEY).startswith("2024-05-01T12:00:00")

    def test_malformed_last_cleanup_time_is_ignored(self, store: ScreenshotStore) -> None:
        store.set_setting(LAST_CLEANUP_KEY, "not a date")

        assert store.get_last_cleanup_time() is None

    def test_tags(self, store: ScreenshotStore) -> None:
        store.add_tags("/shots/a.png", ["work", "ui"])
        store.add_tags("/shots/a.png", ["work"])
        store.add_tags("/shots/b.png", ["home"])

        assert store.get_tags("/shots/a.png") == ["ui", "work"]
        assert store.get_all_tags() == {"/shots/a.png": ["ui", "work"], "/shots/b.png": ["home"]}

        store.remove_tags("/shots/a.png", ["ui"])
        assert store.get_tags("/shots/a.png") == ["work"]

    def test_vacuum(self, store: ScreenshotStore) -> None:
        store.add_file(_file("/shots/a.png"))
        store.delete_file("/shots/a.png")

        store.vacuum()

        assert store.get_all_files() == []
