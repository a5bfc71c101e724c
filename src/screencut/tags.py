"""Tagging and search over tracked screenshots.

Tags are stored in the same SQLite database as the tracked files, keyed by
path, so there is a single source of truth for file identity. Tags outlive a
tracked-file row (a deleted and later restored screenshot keeps its tags);
search only ever returns currently tracked files.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from .persistence import ScreenshotStore, TrackedFile

LOGGER = logging.getLogger(__name__)

SIZE_FILTER_PATTERN = re.compile(r"^([<>])?(\d+)(B|KB|MB|GB)?$", re.IGNORECASE)
_SIZE_MULTIPLIERS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}


@dataclass
class SearchOptions:
    tag: bool = False
    match_all: bool = False
    regex: bool = False
    date_from: dt.date | None = None
    date_to: dt.date | None = None
    size: str | None = None


@dataclass
class SearchHit:
    file: TrackedFile
    tags: list[str] = field(default_factory=list)


def normalize_tags(tags: Iterable[str]) -> list[str]:
    """Trim, lowercase, and de-duplicate tags while keeping their order."""
    seen: dict[str, None] = {}
    for raw in tags:
        for part in raw.split(","):
            cleaned = part.strip().lower()
            if cleaned:
                seen.setdefault(cleaned, None)
    return list(seen)


def parse_size_filter(expression: str) -> tuple[str, int]:
    """Parse ``>1MB`` / ``<500KB`` / ``2048`` into an operator and a byte count.

    Raises:
        ValueError: if the expression is malformed.
    """
    match = SIZE_FILTER_PATTERN.match(expression.strip())
    if not match:
        raise ValueError(f"Invalid size filter '{expression}'; expected e.g. '>1MB' or '<500KB'")
    operator, value, unit = match.groups()
    return operator or "=", int(value) * _SIZE_MULTIPLIERS[(unit or "B").upper()]


def _size_matches(size: int, expression: str) -> bool:
    operator, limit = parse_size_filter(expression)
    if operator == ">":
        return size > limit
    if operator == "<":
        return size < limit
    return size == limit


def _name_pattern(query: str, *, regex: bool) -> re.Pattern[str]:
    if regex:
        try:
            return re.compile(query, re.IGNORECASE)
        except re.error as exc:
            raise ValueError(f"Invalid regular expression '{query}': {exc}") from exc
    # Fuzzy: every character of the query, in order
    return re.compile(".*".join(re.escape(char) for char in query), re.IGNORECASE)


def _reference_date(record: TrackedFile) -> dt.date:
    moment = record.modified_time or record.last_accessed
    return moment.astimezone(dt.UTC).date()


class TagIndex:
    def __init__(self, store: ScreenshotStore) -> None:
        self._store = store

    def tag(self, path: str, tags: Iterable[str]) -> list[str] | None:
        """Add tags to a tracked file and return all of its tags.

        Returns None when the path is not tracked.
        """
        if self._store.get_file(path) is None:
            return None
        cleaned = normalize_tags(tags)
        if cleaned:
            self._store.add_tags(path, cleaned)
            LOGGER.info("Tagged %s with: %s", path, ", ".join(cleaned))
        return self._store.get_tags(path)

    def untag(self, path: str, tags: Iterable[str]) -> list[str]:
        self._store.remove_tags(path, normalize_tags(tags))
        return self._store.get_tags(path)

    def tags_for(self, path: str) -> list[str]:
        return self._store.get_tags(path)

    def search(self, query: str, options: SearchOptions | None = None) -> list[SearchHit]:
        """Search tracked files by name or tag, then filter by date and size.

        Raises:
            ValueError: for an invalid regex or size filter.
        """
        options = options or SearchOptions()
        if options.size:
            parse_size_filter(options.size)
        all_tags = self._store.get_all_tags()
        hits = [SearchHit(file=record, tags=all_tags.get(record.path, [])) for record in self._store.get_all_files()]

        if options.tag:
            wanted = normalize_tags([query])
            hits = [hit for hit in hits if self._tags_match(hit.tags, wanted, match_all=options.match_all)]
        else:
            pattern = _name_pattern(query, regex=options.regex)
            hits = [
                hit
                for hit in hits
                if pattern.search(hit.file.name) or any(pattern.search(tag) for tag in hit.tags)
            ]

        if options.date_from or options.date_to:
            start = options.date_from or dt.date.min
            end = options.date_to or dt.date.max
            hits = [hit for hit in hits if start <= _reference_date(hit.file) <= end]

        if options.size:
            hits = [hit for hit in hits if _size_matches(hit.file.size, options.size)]

        return hits

    @staticmethod
    def _tags_match(tags: list[str], wanted: list[str], *, match_all: bool) -> bool:
        if not wanted:
            return False
        matched = [term for term in wanted if any(term in tag for tag in tags)]
        return len(matched) == len(wanted) if match_all else bool(matched)


__all__ = ["SearchHit", "SearchOptions", "TagIndex", "normalize_tags", "parse_size_filter"]
