from __future__ import annotations

import argparse
import datetime as dt
import functools
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape

from .commands import ScreenCut
from .config import (
    AUTO_CLEANUP_ENV_VAR,
    CONFIG_ENV_VAR,
    DATA_DIR_ENV_VAR,
    SCREENSHOT_DIRS_ENV_VAR,
    Settings,
    load_config,
    resolve_config_path,
    write_config,
)
from .errors import ScreenCutError, StoreError
from .logging_utils import configure_logging
from .summary_table import ResultRenderer
from .tags import SearchOptions, parse_size_filter
from .version import __version__

LOGGER = logging.getLogger(__name__)

CommandHandler = Callable[[argparse.Namespace, ScreenCut, ResultRenderer], int]

_ENVIRONMENT_HELP = f"""\
environment variables:
  {CONFIG_ENV_VAR:<26} path to the YAML configuration file
  {DATA_DIR_ENV_VAR:<26} data directory holding the database, cache and backups
  {SCREENSHOT_DIRS_ENV_VAR:<26} comma separated screenshot directories
  {AUTO_CLEANUP_ENV_VAR:<26} set to 0 to skip the cleanup that runs before each command

examples:
  screencut list
  screencut delete -n 3
  screencut restore --list
  screencut restore -n 1
  screencut search "2024-05" --from 2024-05-01 --size ">1MB"
"""


def _make_console() -> Console:
    return Console()


def _parse_date(value: str) -> dt.date:
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD") from exc


def _parse_size(value: str) -> str:
    try:
        parse_size_filter(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return value


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid number '{value}'") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError("Please provide a positive number")
    return number


def _load_settings(args: argparse.Namespace) -> Optional[Settings]:
    try:
        settings = load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        configure_logging(args.log_level or "INFO")
        LOGGER.error("Unable to load configuration: %s", exc)
        return None
    configure_logging(
        args.log_level or settings.logging.level,
        log_file=args.log_file or settings.logging.file,
    )
    return settings


def _open_app(args: argparse.Namespace) -> Optional[ScreenCut]:
    settings = _load_settings(args)
    if settings is None:
        return None
    app = ScreenCut.from_settings(settings)
    try:
        app.init()
    except (StoreError, OSError) as exc:
        LOGGER.error("Failed to initialize %s: %s", settings.data_dir, exc)
        app.close()
        return None
    return app


def command(*, scheduled_cleanup: bool = True) -> Callable[[CommandHandler], Callable[[argparse.Namespace], int]]:
    """Wrap a handler with configuration loading, store setup and teardown.

    Every handler except ``init`` and ``cleanup`` first runs the time-gated
    cleanup, the same way a scheduled job would.
    """

    def decorator(handler: CommandHandler) -> Callable[[argparse.Namespace], int]:
        @functools.wraps(handler)
        def wrapper(args: argparse.Namespace) -> int:
            app = _open_app(args)
            if app is None:
                return 1
            try:
                if scheduled_cleanup:
                    app.run_scheduled_cleanup()
                return handler(args, app, ResultRenderer(_make_console()))
            except ValueError as exc:
                LOGGER.error("%s", exc)
                return 1
            except ScreenCutError as exc:
                LOGGER.error("Command failed: %s", exc)
                return 1
            finally:
                app.close()

        return wrapper

    return decorator


@command(scheduled_cleanup=False)
def run_init(args: argparse.Namespace, app: ScreenCut, renderer: ResultRenderer) -> int:
    config_path = resolve_config_path(args.config)
    if not config_path.exists():
        write_config(config_path, app.settings)
        LOGGER.info("Wrote default configuration to %s", config_path)
    renderer.console.print(f"Initialized screencut in {app.settings.data_dir}")
    renderer.console.print(f"  Database: {app.settings.db_path}")
    renderer.console.print(f"  Cache:    {app.settings.cache.directory}")
    renderer.console.print(f"  Backups:  {app.settings.backups.directory}")
    return 0


@command()
def run_list(args: argparse.Namespace, app: ScreenCut, renderer: ResultRenderer) -> int:
    renderer.render_files(app.list_screenshots())
    return 0


@command()
def run_delete(args: argparse.Namespace, app: ScreenCut, renderer: ResultRenderer) -> int:
    if args.paths and args.number is not None:
        LOGGER.error("Specify either --number or paths, not both")
        return 1
    if args.paths:
        result = app.delete_paths(args.paths)
    else:
        count = args.number or 1
        app.list_screenshots()
        renderer.console.print(f"Deleting {count} most recent screenshot(s)...")
        result = app.delete_recent(count)
    renderer.render_delete(result)
    return 0


@command()
def run_restore(args: argparse.Namespace, app: ScreenCut, renderer: ResultRenderer) -> int:
    if args.list:
        renderer.render_backups(app.list_backups())
        return 0
    if args.number is not None:
        result = app.restore_recent(args.number, populate_cache=args.cache)
    elif args.path:
        result = app.restore_path(args.path, populate_cache=args.cache)
    elif args.all_deleted:
        result = app.restore_deleted(populate_cache=args.cache)
    else:
        LOGGER.error("Please specify one of --list, --number, --path or --all-deleted")
        return 1
    renderer.render_restore(result)
    return 0 if result.restored or not result.failed else 1


@command(scheduled_cleanup=False)
def run_cleanup(args: argparse.Namespace, app: ScreenCut, renderer: ResultRenderer) -> int:
    report = app.cleanup(force=args.force)
    renderer.render_cleanup(report)
    return 0


@command()
def run_tag(args: argparse.Namespace, app: ScreenCut, renderer: ResultRenderer) -> int:
    path = Path(args.path).expanduser()
    if not path.exists():
        LOGGER.error("File does not exist: %s", path)
        return 1
    tags = app.tag(path, args.tags)
    if tags is None:
        LOGGER.error("Screenshot not tracked: %s (run 'screencut list' first)", path)
        return 1
    renderer.console.print(f"[green]Tagged {escape(path.name)}[/green]")
    renderer.console.print(f"All tags: {escape(', '.join(tags)) or '-'}")
    return 0


@command()
def run_search(args: argparse.Namespace, app: ScreenCut, renderer: ResultRenderer) -> int:
    options = SearchOptions(
        tag=args.tag,
        match_all=args.all,
        regex=args.regex,
        date_from=args.date_from,
        date_to=args.date_to,
        size=args.size,
    )
    renderer.render_search(args.query, app.search(args.query, options))
    return 0


@command()
def run_stats(args: argparse.Namespace, app: ScreenCut, renderer: ResultRenderer) -> int:
    renderer.render_stats(app.stats())
    return 0


@command()
def run_watch(args: argparse.Namespace, app: ScreenCut, renderer: ResultRenderer) -> int:
    renderer.console.print("Watching for new screenshots. Press Ctrl+C to stop.")
    app.watch()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="screencut",
        description="Manage screenshots: list, delete with backup, restore and tag.",
        epilog=_ENVIRONMENT_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to the YAML configuration file (default: ${CONFIG_ENV_VAR} or ~/.config/screen-cut/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        default=None,
        help="Console log level (overrides logging.level from the configuration)",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="Also write DEBUG logs to this file")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    init_parser = subparsers.add_parser("init", help="Create the data directory, database and default config")
    init_parser.set_defaults(func=run_init)

    list_parser = subparsers.add_parser("list", help="List all screenshots")
    list_parser.set_defaults(func=run_list)

    delete_parser = subparsers.add_parser("delete", help="Delete screenshots, keeping a backup of each")
    delete_parser.add_argument(
        "-n", "--number", type=_positive_int, default=None, help="Number of recent screenshots to delete"
    )
    delete_parser.add_argument("paths", nargs="*", help="Specific screenshots to delete")
    delete_parser.set_defaults(func=run_delete)

    restore_parser = subparsers.add_parser("restore", help="Restore screenshots from backup")
    restore_group = restore_parser.add_mutually_exclusive_group()
    restore_group.add_argument("-l", "--list", action="store_true", help="List available backups")
    restore_group.add_argument("-p", "--path", default=None, help="Path to restore")
    restore_group.add_argument(
        "-n", "--number", type=_positive_int, default=None, help="Number of recently deleted files to restore"
    )
    restore_group.add_argument(
        "--all-deleted", action="store_true", help="Restore every recently deleted screenshot"
    )
    restore_parser.add_argument(
        "--cache", action="store_true", help="Also copy restored files into the cache"
    )
    restore_parser.set_defaults(func=run_restore)

    cleanup_parser = subparsers.add_parser("cleanup", help="Clean up old backups and cache files")
    cleanup_parser.add_argument(
        "-f", "--force", action="store_true", help="Force cleanup regardless of last cleanup time"
    )
    cleanup_parser.set_defaults(func=run_cleanup)

    tag_parser = subparsers.add_parser("tag", help="Add tags to a screenshot")
    tag_parser.add_argument("path", help="Screenshot to tag")
    tag_parser.add_argument("tags", nargs="+", help="Tags to add")
    tag_parser.set_defaults(func=run_tag)

    search_parser = subparsers.add_parser("search", help="Search screenshots by name or tag")
    search_parser.add_argument("query", help="Search text (fuzzy by default)")
    search_parser.add_argument("-t", "--tag", action="store_true", help="Search by tags (comma separated)")
    search_parser.add_argument("-a", "--all", action="store_true", help="Require every tag to match")
    search_parser.add_argument("-r", "--regex", action="store_true", help="Treat the query as a regular expression")
    search_parser.add_argument("--from", dest="date_from", type=_parse_date, default=None, help="Start date (YYYY-MM-DD)")
    search_parser.add_argument("--to", dest="date_to", type=_parse_date, default=None, help="End date (YYYY-MM-DD)")
    search_parser.add_argument("--size", type=_parse_size, default=None, help="Size filter, e.g. '>1MB' or '<500KB'")
    search_parser.set_defaults(func=run_search)

    stats_parser = subparsers.add_parser("stats", help="Show cache, backup and cleanup statistics")
    stats_parser.set_defaults(func=run_stats)

    watch_parser = subparsers.add_parser("watch", help="Watch screenshot directories for new files")
    watch_parser.set_defaults(func=run_watch)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        # argparse exits 2 on usage errors; --help and --version exit 0
        return 0 if exc.code in (0, None) else 1
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
