import pytest

from cocokaranavi.utils.query import (
    DEFAULT_PAGE_LIMIT,
    ListQuery,
    apply_list_query,
    chunked,
    matches_search,
    paginate,
    parse_positive_int,
    sort_records,
)


@pytest.mark.parametrize(
    "value,expected",
    [("5", 5), (None, 7), ("0", 7), ("-3", 7), ("abc", 7), ("", 7), ("2.5", 7)],
)
def test_parse_positive_int(value, expected) -> None:
    assert parse_positive_int(value, 7) == expected


def test_list_query_defaults() -> None:
    query = ListQuery.from_query_string("")
    assert query.limit == DEFAULT_PAGE_LIMIT
    assert query.page == 1
    assert query.search == ""
    assert query.sort == ""
    assert query.offset == 0


def test_list_query_custom_default_limit() -> None:
    assert ListQuery.from_query_string("page=2", default_limit=50).limit == 50


def test_list_query_parses_values() -> None:
    query = ListQuery.from_query_string("limit=20&page=3&search=%E9%A0%AD%E7%97%9B&sort=-date")
    assert (query.limit, query.page, query.search, query.sort) == (20, 3, "頭痛", "-date")
    assert query.offset == 40


def test_matches_search_ignores_non_strings() -> None:
    record = {"name": "Taro", "grade": 3, "symptoms": ["headache"], "active": True}
    assert matches_search(record, "taro")
    assert not matches_search(record, "3")
    assert not matches_search(record, "headache")
    assert not matches_search(record, "true")


def test_sort_places_missing_values_last() -> None:
    records = [{"id": 1, "v": "b"}, {"id": 2}, {"id": 3, "v": "a"}]
    assert [r["id"] for r in sort_records(records, "v")] == [3, 1, 2]
    assert [r["id"] for r in sort_records(records, "-v")] == [1, 3, 2]


def test_sort_mixed_types_falls_back_to_strings() -> None:
    records = [{"v": 10}, {"v": "9"}]
    assert [r["v"] for r in sort_records(records, "v")] == [10, "9"]


def test_sort_without_key_keeps_order() -> None:
    records = [{"id": 2}, {"id": 1}]
    assert sort_records(records, "") == records


def test_paginate() -> None:
    items = list(range(10))
    assert paginate(items, 1, 4) == [0, 1, 2, 3]
    assert paginate(items, 3, 4) == [8, 9]
    assert paginate(items, 4, 4) == []


def test_apply_list_query_total_is_before_paging() -> None:
    records = [{"name": f"n{i}"} for i in range(12)] + [{"name": "other"}]
    page, total = apply_list_query(records, ListQuery(limit=5, page=3, search="n"))
    assert total == 12
    assert [r["name"] for r in page] == ["n10", "n11"]


def test_chunked() -> None:
    chunks = list(chunked(list(range(7)), 3))
    assert chunks == [(0, [0, 1, 2]), (3, [3, 4, 5]), (6, [6])]
    assert list(chunked([], 3)) == []


def test_chunked_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError):
        list(chunked([1], 0))
