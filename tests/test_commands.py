from __future__ import annotations

from unittest.mock import patch

import pytest

from screencut.commands import ScreenCut


@pytest.fixture
def app(settings, clock) -> ScreenCut:
    app = ScreenCut.from_settings(settings, clock=clock)
    app.init()
    yield app
    app.close()


def test_init_creates_directories_and_database(app, settings) -> None:
    assert settings.data_dir.is_dir()
    assert settings.cache.directory.is_dir()
    assert settings.backups.directory.is_dir()
    assert settings.db_path.exists()


def test_list_discovers_and_forgets(app, make_shot) -> None:
    first = make_shot("Screenshot 2024-05-01 at 10.00.00.png")
    second = make_shot("Screenshot 2024-05-01 at 11.00.00.png")
    make_shot("holiday.png")

    listed = app.list_screenshots()
    assert {record.path for record in listed} == {str(first), str(second)}

    second.unlink()
    listed = app.list_screenshots()
    assert [record.path for record in listed] == [str(first)]
    assert app.store.get_file(str(second)) is None


def test_delete_then_restore_round_trip(app, make_shot) -> None:
    shot = make_shot(content=b"roundtrip")
    app.list_screenshots()

    deleted = app.delete_recent(1)
    assert deleted.deleted == [str(shot)]
    assert not shot.exists()
    assert [marker.path for marker in app.recently_deleted()] == [str(shot)]
    assert len(app.list_backups()) == 1

    restored = app.restore_path(shot)
    assert restored.restored == [str(shot)]
    assert shot.read_bytes() == b"roundtrip"
    assert app.recently_deleted() == []


def test_delete_paths_and_restore_recent(app, make_shot) -> None:
    first = make_shot("Screenshot 2024-05-01 at 10.00.00.png")
    second = make_shot("Screenshot 2024-05-01 at 11.00.00.png")

    result = app.delete_paths([first, second])
    assert len(result.deleted) == 2

    restored = app.restore_recent(5)
    assert sorted(restored.restored) == sorted([str(first), str(second)])


def test_scheduled_cleanup_respects_auto_setting(app, settings, clock) -> None:
    settings.cleanup.auto = False
    assert app.run_scheduled_cleanup() is None
    assert app.store.get_last_cleanup_time() is None

    settings.cleanup.auto = True
    assert app.run_scheduled_cleanup() is not None
    assert app.store.get_last_cleanup_time() == clock()
    assert app.run_scheduled_cleanup() is None


def test_forced_cleanup(app, clock) -> None:
    app.cleanup()
    clock.advance(minutes=1)

    assert app.cleanup() is None
    assert app.cleanup(force=True) is not None


def test_tag_and_search(app, make_shot) -> None:
    shot = make_shot()
    app.list_screenshots()

    assert app.tag(shot, ["Design"]) == ["design"]
    hits = app.search("design")

    assert [hit.file.path for hit in hits] == [str(shot)]


def test_stats(app, make_shot, clock) -> None:
    shot = make_shot(content=b"12345")
    app.list_screenshots()
    app.delete_paths([shot])
    app.cleanup(force=True)

    stats = app.stats()

    assert stats["backups"] == 1
    assert stats["backup_bytes"] == 5
    assert stats["deleted"] == 1
    assert stats["index"].total_files == 0
    assert stats["last_cleanup"] == clock()


def test_watcher_uses_app_store(app) -> None:
    with patch("screencut.watcher.Observer"):
        watcher = app.watcher()

    assert watcher.roots == app.settings.screenshot_dirs
    watcher.stop()


def test_recent_files(app, make_shot) -> None:
    make_shot("Screenshot 2024-05-01 at 10.00.00.png")
    app.list_screenshots()

    assert [record.name for record in app.recent_files()] == ["Screenshot 2024-05-01 at 10.00.00.png"]
