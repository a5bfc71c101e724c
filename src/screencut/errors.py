"""Exception types shared by the screencut components.

Lookups that miss are not errors: stores and managers return ``None`` or an
empty list for them. Only genuine failures are raised.
"""

from __future__ import annotations

from pathlib import Path


class ScreenCutError(RuntimeError):
    """Base class for screencut failures."""


class NotInitializedError(ScreenCutError):
    """Raised when the store is used before ``init()`` was called."""


class StoreError(ScreenCutError):
    """Raised when a persistence read, write, or compaction fails.

    Attributes:
        key: The path or setting key the failed operation was working on.
    """

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class FileOperationError(ScreenCutError):
    """Raised when copying, reading, or removing a file on disk fails."""

    def __init__(self, message: str, *, path: str | Path | None = None) -> None:
        super().__init__(message)
        self.path = str(path) if path is not None else None


__all__ = ["FileOperationError", "NotInitializedError", "ScreenCutError", "StoreError"]
