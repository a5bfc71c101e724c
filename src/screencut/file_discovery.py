"""Screenshot discovery and classification.

Screenshot directories are scanned one level deep. A file counts as a
screenshot when its name matches one of the configured regex patterns and it
is not a hidden file or a macOS resource fork.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path

from .cache import modified_time_of
from .logging_utils import render_fields_block
from .persistence import TrackedFile
from .utils import utcnow

LOGGER = logging.getLogger(__name__)


def skip_reason(path: Path) -> str | None:
    """Return why ``path`` should never be tracked, or None."""
    name = path.name
    if name.startswith("._") and len(name) > 2:
        return "macOS resource fork (._ prefix)"
    if name.startswith("."):
        return "hidden file"
    return None


def is_screenshot(name: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    return any(pattern.search(name) for pattern in patterns)


def gather_screenshots(
    directories: Iterable[Path],
    patterns: Sequence[re.Pattern[str]],
) -> Iterator[Path]:
    """Yield screenshots found directly inside each directory.

    Missing directories are logged and skipped.
    """
    for directory in directories:
        if not directory.is_dir():
            LOGGER.warning(render_fields_block("Screenshot Directory Missing", {"Path": directory}))
            continue

        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.is_symlink():
                continue
            reason = skip_reason(path)
            if reason:
                LOGGER.debug(render_fields_block("Skipping File", {"Source": path, "Reason": reason}))
                continue
            if is_screenshot(path.name, patterns):
                yield path


def tracked_file_for(path: Path) -> TrackedFile:
    """Build a tracked-file record from what is on disk now.

    Raises:
        OSError: if the file cannot be stat'ed.
    """
    stat = path.stat()
    return TrackedFile(
        path=str(path),
        size=stat.st_size,
        last_accessed=utcnow(),
        modified_time=modified_time_of(path),
    )


__all__ = ["gather_screenshots", "is_screenshot", "skip_reason", "tracked_file_for"]
