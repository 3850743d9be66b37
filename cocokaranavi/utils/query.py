"""一覧取得の検索・並び替え・ページング"""

from typing import Any, Iterator, List, Optional, Sequence, Tuple, TypeVar
from urllib.parse import parse_qs

from cocokaranavi.domain.records import Record

DEFAULT_PAGE_LIMIT = 10000
DEFAULT_PAGE = 1

T = TypeVar("T")


def parse_positive_int(value: Optional[str], default: int) -> int:
    """正の整数に変換できなければ default を返す"""
    try:
        parsed = int(value) if value is not None else default
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


class ListQuery:
    """一覧取得のクエリパラメータ"""

    def __init__(
        self,
        limit: int = DEFAULT_PAGE_LIMIT,
        page: int = DEFAULT_PAGE,
        search: str = "",
        sort: str = "",
    ):
        self.limit = limit
        self.page = page
        self.search = search
        self.sort = sort

    @classmethod
    def from_query_string(
        cls, query_string: str, default_limit: int = DEFAULT_PAGE_LIMIT
    ) -> "ListQuery":
        params = parse_qs(query_string, keep_blank_values=True)

        def first(key: str) -> Optional[str]:
            values = params.get(key)
            return values[0] if values else None

        return cls(
            limit=parse_positive_int(first("limit"), default_limit),
            page=parse_positive_int(first("page"), DEFAULT_PAGE),
            search=(first("search") or "").strip(),
            sort=(first("sort") or "").strip(),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def matches_search(record: Record, search: str) -> bool:
    """文字列フィールドのいずれかに search が含まれるか（大文字小文字を区別しない）"""
    needle = search.lower()
    return any(
        isinstance(value, str) and needle in value.lower()
        for value in record.values()
    )


def filter_by_search(records: Sequence[Record], search: str) -> List[Record]:
    if not search:
        return list(records)
    return [r for r in records if matches_search(r, search)]


def sort_records(records: Sequence[Record], sort: str) -> List[Record]:
    """
    sort="field" で昇順、"-field" で降順

    フィールドを持たないレコードは向きに関わらず末尾に置く。
    型が混在する値は文字列として比較する。
    """
    if not sort:
        return list(records)
    descending = sort.startswith("-")
    field = sort.lstrip("-")
    present = [r for r in records if r.get(field) is not None]
    missing = [r for r in records if r.get(field) is None]
    try:
        present.sort(key=lambda r: r[field], reverse=descending)
    except TypeError:
        present.sort(key=lambda r: str(r[field]), reverse=descending)
    return present + missing


def paginate(records: Sequence[T], page: int, limit: int) -> List[T]:
    offset = (page - 1) * limit
    return list(records[offset:offset + limit])


def apply_list_query(records: Sequence[Record], query: ListQuery) -> Tuple[List[Record], int]:
    """検索 → 並び替え → ページング。(ページ内レコード, ページング前の件数) を返す"""
    filtered = filter_by_search(records, query.search)
    ordered = sort_records(filtered, query.sort)
    return paginate(ordered, query.page, query.limit), len(ordered)


def chunked(items: Sequence[T], size: int) -> Iterator[Tuple[int, List[T]]]:
    """(開始位置, チャンク) を size 件ずつ返す"""
    if size < 1:
        raise ValueError(f"chunk size must be positive: {size}")
    for start in range(0, len(items), size):
        yield start, list(items[start:start + size])


def list_envelope(data: List[Any], total: int, query: ListQuery) -> dict:
    return {"data": data, "total": total, "page": query.page, "limit": query.limit}
