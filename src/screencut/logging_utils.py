from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from textwrap import wrap
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

from .utils import ensure_directory

DEFAULT_WRAP_WIDTH = 100
DEFAULT_LABEL_WIDTH = 18
DEFAULT_INDENT = "    "

FILE_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

FieldMapping = Union[Mapping[str, object], Sequence[tuple[str, object]]]


def _stringify(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple, set)):
        return ", ".join(_stringify(item) for item in value)
    return str(value)


class LogBlockBuilder:
    """Builds a titled, aligned multi-line log message."""

    def __init__(self, title: str, *, wrap_width: int = DEFAULT_WRAP_WIDTH, pad_top: bool = False) -> None:
        self.wrap_width = wrap_width
        self.lines: list[str] = [""] if pad_top else []
        self.lines.append(title)
        self.lines.append("-" * len(title))

    def add_fields(self, fields: FieldMapping | None) -> None:
        if not fields:
            return
        items = list(fields.items()) if isinstance(fields, Mapping) else list(fields)
        if not items:
            return

        label_width = max(min(max(len(str(key)) for key, _ in items), DEFAULT_LABEL_WIDTH), 6)
        value_width = max(self.wrap_width - len(DEFAULT_INDENT) - label_width - 2, 32)
        for key, value in items:
            wrapped = wrap(_stringify(value), width=value_width) or [""]
            self.lines.append(f"{DEFAULT_INDENT}{str(key):<{label_width}}: {wrapped[0]}")
            for continuation in wrapped[1:]:
                self.lines.append(f"{DEFAULT_INDENT}{'':<{label_width}}  {continuation}")

    def add_section(self, heading: str, items: Iterable[object], *, empty_label: str = "(none)") -> None:
        self.lines.append(f"{heading}:")
        materialized = [_stringify(item) for item in items if item is not None]
        if not materialized:
            self.lines.append(f"{DEFAULT_INDENT}{empty_label}")
            return
        for item in materialized:
            self.lines.append(f"{DEFAULT_INDENT}- {item}")

    def render(self) -> str:
        return "\n".join(self.lines).rstrip()


def render_fields_block(title: str, fields: FieldMapping, *, pad_top: bool = False) -> str:
    builder = LogBlockBuilder(title, pad_top=pad_top)
    builder.add_fields(fields)
    return builder.render()


def render_section_block(
    title: str,
    fields: FieldMapping | None,
    sections: Sequence[tuple[str, Sequence[object]]],
    *,
    pad_top: bool = False,
) -> str:
    builder = LogBlockBuilder(title, pad_top=pad_top)
    builder.add_fields(fields)
    for heading, items in sections:
        builder.add_section(heading, items)
    return builder.render()


def configure_logging(
    level: str | int = "INFO",
    *,
    log_file: Path | None = None,
    console: Console | None = None,
) -> None:
    """Install a Rich console handler (and optionally a file handler) on the root logger.

    Calling this more than once replaces the handlers installed by the previous call.
    """
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_screencut_handler", False):
            root.removeHandler(handler)
            handler.close()

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    rich_handler.setLevel(resolved)
    rich_handler._screencut_handler = True  # type: ignore[attr-defined]
    root.addHandler(rich_handler)

    if log_file is not None:
        ensure_directory(log_file.parent)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        file_handler._screencut_handler = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    root.setLevel(min(resolved, logging.DEBUG) if log_file is not None else resolved)


__all__ = [
    "LogBlockBuilder",
    "configure_logging",
    "render_fields_block",
    "render_section_block",
]
