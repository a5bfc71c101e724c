from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .utils import format_size

if TYPE_CHECKING:  # pragma: no cover
    from .models import CleanupReport, DeleteResult, ItemFailure, RestoreResult
    from .persistence import BackupRecord, TrackedFile
    from .tags import SearchHit


# Color constants for status indicators
SUCCESS_COLOR = "green"
WARNING_COLOR = "yellow"
ERROR_COLOR = "red"
DIM_COLOR = "dim"

SUCCESS_SYMBOL = "✓"
WARNING_SYMBOL = "!"
ERROR_SYMBOL = "✗"


def _format_time(value: Optional[dt.datetime]) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


class ResultRenderer:
    """Renders command results as Rich tables with color-coded status lines."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def _status_line(self, symbol: str, color: str, message: str) -> None:
        self.console.print(f"[{color}]{symbol}[/{color}] {message}")

    def _render_failures(self, failures: Sequence["ItemFailure"]) -> None:
        for failure in failures:
            self.console.print(f"  [{DIM_COLOR}]{escape(str(failure))}[/{DIM_COLOR}]")

    def render_files(self, files: Sequence["TrackedFile"], *, title: str = "Screenshots") -> None:
        if not files:
            self.console.print("No screenshots found.")
            return
        table = Table(title=title, show_lines=False)
        table.add_column("#", justify="right", style=DIM_COLOR)
        table.add_column("Name", style="cyan")
        table.add_column("Modified")
        table.add_column("Last accessed")
        table.add_column("Size", justify="right")
        for index, record in enumerate(files, start=1):
            table.add_row(
                str(index),
                escape(record.name),
                _format_time(record.modified_time),
                _format_time(record.last_accessed),
                format_size(record.size),
            )
        self.console.print(table)
        total = sum(record.size for record in files)
        self.console.print(f"Found {len(files)} screenshots, total size {format_size(total)}")

    def render_delete(self, result: "DeleteResult") -> None:
        self.console.print("\n[bold]Deletion Summary:[/bold]")
        self._status_line(SUCCESS_SYMBOL, SUCCESS_COLOR, f"Successfully deleted: {len(result.deleted)} files")
        if result.failed:
            self._status_line(ERROR_SYMBOL, ERROR_COLOR, f"Failed to delete: {len(result.failed)} files")
            self._render_failures(result.failed)
        if result.shortfall:
            self._status_line(
                WARNING_SYMBOL,
                WARNING_COLOR,
                f"Only {result.available} files were available (requested: {result.requested})",
            )
        if result.deleted and result.backup_dir is not None:
            self.console.print(f"\nBackups are stored in: {escape(str(result.backup_dir))}")
            self.console.print("Use the restore command to recover deleted files if needed.")

    def render_restore(self, result: "RestoreResult") -> None:
        self.console.print("\n[bold]Restore Summary:[/bold]")
        self._status_line(SUCCESS_SYMBOL, SUCCESS_COLOR, f"Successfully restored: {len(result.restored)} files")
        for path in result.restored:
            self.console.print(f"  [{DIM_COLOR}]{escape(path)}[/{DIM_COLOR}]")
        if result.failed:
            self._status_line(ERROR_SYMBOL, ERROR_COLOR, f"Failed to restore: {len(result.failed)} files")
            self._render_failures(result.failed)

    def render_backups(self, backups: Sequence["BackupRecord"]) -> None:
        if not backups:
            self.console.print("No backups available.")
            return
        table = Table(title=f"Available backups ({len(backups)})")
        table.add_column("Name", style="cyan")
        table.add_column("Original path")
        table.add_column("Backup path", style=DIM_COLOR)
        table.add_column("Size", justify="right")
        table.add_column("Backup time")
        for backup in backups:
            table.add_row(
                escape(Path(backup.original_path).name),
                escape(backup.original_path),
                escape(backup.backup_path),
                format_size(backup.size),
                _format_time(backup.created_at),
            )
        self.console.print(table)

    def render_cleanup(self, report: Optional["CleanupReport"]) -> None:
        if report is None:
            self.console.print(f"[{DIM_COLOR}]Cleanup not due yet; use --force to run it now.[/{DIM_COLOR}]")
            return
        table = Table(title="Cleanup", show_header=True)
        table.add_column("Step")
        table.add_column("Removed", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Freed", justify="right")
        for label, sweep in (
            ("Expired cache entries", report.cache),
            ("Pruned cache files", report.cache_directory),
            ("Purged backups", report.backups),
        ):
            if sweep is None:
                table.add_row(label, "-", f"[{ERROR_COLOR}]error[/{ERROR_COLOR}]", "-")
                continue
            failed_color = ERROR_COLOR if sweep.failed else DIM_COLOR
            table.add_row(
                label,
                str(len(sweep.removed)),
                f"[{failed_color}]{len(sweep.failed)}[/{failed_color}]",
                format_size(sweep.freed_bytes),
            )
        self.console.print(table)
        if report.vacuumed:
            self._status_line(SUCCESS_SYMBOL, SUCCESS_COLOR, "Database vacuumed")
        for error in report.errors:
            self._status_line(ERROR_SYMBOL, ERROR_COLOR, escape(error))

    def render_search(self, query: str, hits: Sequence["SearchHit"]) -> None:
        if not hits:
            self.console.print(f"[{WARNING_COLOR}]No screenshots found matching \"{escape(query)}\"[/{WARNING_COLOR}]")
            return
        table = Table(title=f"Search results for \"{escape(query)}\"")
        table.add_column("Name", style="cyan")
        table.add_column("Path", style=DIM_COLOR)
        table.add_column("Modified")
        table.add_column("Size", justify="right")
        table.add_column("Tags")
        for hit in hits:
            table.add_row(
                escape(hit.file.name),
                escape(hit.file.path),
                _format_time(hit.file.modified_time or hit.file.last_accessed),
                format_size(hit.file.size),
                escape(", ".join(hit.tags)),
            )
        self.console.print(table)
        self.console.print(f"Found {len(hits)} matching screenshots")

    def render_stats(self, stats: dict[str, Any]) -> None:
        cache = stats["cache"]
        index = stats["index"]
        table = Table(show_header=False, title="Statistics")
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Cache files", f"{cache.total_files} ({format_size(cache.total_size)})")
        table.add_row("Oldest cache file", escape(cache.oldest or "-"))
        table.add_row("Newest cache file", escape(cache.newest or "-"))
        table.add_row("Tracked files", f"{index.total_files} ({format_size(index.total_size)})")
        table.add_row("Least recently used", escape(index.oldest or "-"))
        table.add_row("Most recently used", escape(index.newest or "-"))
        table.add_row("Backups", f"{stats['backups']} ({format_size(stats['backup_bytes'])})")
        table.add_row("Recently deleted", str(stats["deleted"]))
        table.add_row("Last cleanup", _format_time(stats["last_cleanup"]))
        self.console.print(table)


__all__ = ["ResultRenderer"]
