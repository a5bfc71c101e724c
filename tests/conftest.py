from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from screencut.config import BackupSettings, CacheSettings, Settings
from screencut.persistence import ScreenshotStore

START = dt.datetime(2024, 5, 1, 12, 0, 0, tzinfo=dt.UTC)


class FakeClock:
    """Manually advanced clock returning timezone-aware UTC datetimes."""

    def __init__(self, start: dt.datetime = START) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs: float) -> dt.datetime:
        self.now = self.now + dt.timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def shots_dir(tmp_path: Path) -> Path:
    path = tmp_path / "shots"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path: Path, shots_dir: Path) -> Settings:
    data_dir = tmp_path / "data"
    return Settings(
        data_dir=data_dir,
        cache=CacheSettings(directory=data_dir / "cache"),
        backups=BackupSettings(directory=data_dir / "backup"),
        screenshot_dirs=[shots_dir],
    )


@pytest.fixture
def store(settings: Settings) -> ScreenshotStore:
    store = ScreenshotStore(settings.db_path)
    store.init()
    yield store
    store.close()


def make_screenshot(directory: Path, name: str = "Screenshot 2024-05-01 at 10.00.00.png", content: bytes = b"png") -> Path:
    path = directory / name
    path.write_bytes(content)
    return path


@pytest.fixture
def make_shot(shots_dir: Path):
    """Factory writing a screenshot into the watched directory."""

    def factory(name: str = "Screenshot 2024-05-01 at 10.00.00.png", content: bytes = b"png") -> Path:
        return make_screenshot(shots_dir, name, content)

    return factory
