from __future__ import annotations

import datetime as dt

import pytest

from screencut.persistence import TrackedFile
from screencut.tags import SearchOptions, TagIndex, normalize_tags, parse_size_filter

MAY_1 = dt.datetime(2024, 5, 1, 10, 0, tzinfo=dt.UTC)


@pytest.fixture
def index(store) -> TagIndex:
    for name, size, moment in [
        ("Screenshot 2024-05-01 at 10.00.00.png", 500, MAY_1),
        ("Screenshot 2024-05-03 at 09.00.00.png", 2 * 1024 * 1024, MAY_1 + dt.timedelta(days=2)),
        ("Screen Shot 2024-04-20 at 08.00.00.png", 100, MAY_1 - dt.timedelta(days=11)),
    ]:
        store.add_file(TrackedFile(path=f"/shots/{name}", size=size, last_accessed=moment, modified_time=moment))
    return TagIndex(store)


def test_normalize_tags() -> None:
    assert normalize_tags([" Work ", "ui,Work", "", "bug"]) == ["work", "ui", "bug"]


@pytest.mark.parametrize(
    "expression, expected",
    [(">1MB", (">", 1024 * 1024)), ("<500kb", ("<", 500 * 1024)), ("2048", ("=", 2048))],
)
def test_parse_size_filter(expression, expected) -> None:
    assert parse_size_filter(expression) == expected


def test_parse_size_filter_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        parse_size_filter("big")


def test_tag_untracked_returns_none(index) -> None:
    assert index.tag("/shots/unknown.png", ["work"]) is None


def test_tag_and_untag(index) -> None:
    path = "/shots/Screenshot 2024-05-01 at 10.00.00.png"

    assert index.tag(path, ["Work", "ui"]) == ["ui", "work"]
    assert index.untag(path, ["ui"]) == ["work"]
    assert index.tags_for(path) == ["work"]


def test_fuzzy_name_search(index) -> None:
    hits = index.search("0503")

    assert [hit.file.name for hit in hits] == ["Screenshot 2024-05-03 at 09.00.00.png"]


def test_regex_search(index) -> None:
    hits = index.search(r"^Screen Shot", SearchOptions(regex=True))

    assert [hit.file.name for hit in hits] == ["Screen Shot 2024-04-20 at 08.00.00.png"]


def test_invalid_regex_is_a_value_error(index) -> None:
    with pytest.raises(ValueError):
        index.search("(", SearchOptions(regex=True))


def test_tag_search_any_and_all(index) -> None:
    first = "/shots/Screenshot 2024-05-01 at 10.00.00.png"
    second = "/shots/Screenshot 2024-05-03 at 09.00.00.png"
    index.tag(first, ["work", "ui"])
    index.tag(second, ["work"])

    any_hits = index.search("ui,work", SearchOptions(tag=True))
    all_hits = index.search("ui,work", SearchOptions(tag=True, match_all=True))

    assert {hit.file.path for hit in any_hits} == {first, second}
    assert [hit.file.path for hit in all_hits] == [first]
    assert all_hits[0].tags == ["ui", "work"]


def test_name_search_also_matches_tags(index) -> None:
    path = "/shots/Screen Shot 2024-04-20 at 08.00.00.png"
    index.tag(path, ["invoice"])

    assert [hit.file.path for hit in index.search("invoice")] == [path]


def test_date_and_size_filters(index) -> None:
    in_may = index.search("Screen", SearchOptions(date_from=dt.date(2024, 5, 1), date_to=dt.date(2024, 5, 31)))
    large = index.search("Screen", SearchOptions(size=">1MB"))

    assert len(in_may) == 2
    assert [hit.file.size for hit in large] == [2 * 1024 * 1024]
