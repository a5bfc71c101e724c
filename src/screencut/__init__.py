"""ScreenCut core package.

The screencut package is organized into focused modules with clear separation of concerns:

- **persistence**: SQLite store for tracked files, backups, deletion markers, settings and tags
- **cache**: Timestamped cache copies of screenshots and their expiration
- **backup**: Write-ahead deletion, restoration and backup retention
- **cleanup**: Time-gated retention scheduler
- **file_discovery**: Screenshot directory scanning and name classification
- **watcher**: Filesystem watcher recording new screenshots as they appear
- **tags**: Tagging and search over tracked screenshots
- **commands**: The ``ScreenCut`` facade used by the command line interface

The main entry point for programmatic use is ``ScreenCut.from_settings(load_config())``.
"""

from .commands import ScreenCut
from .config import Settings, load_config
from .version import __version__

__all__ = [
    "__version__",
    "ScreenCut",
    "Settings",
    "load_config",
]
