"""tables/<テーブル名>/<ID> 形式のリクエストを Store の操作に振り分けるアダプター"""

import json
import logging
from typing import Any, List, Optional, Sequence, Tuple, Union
from urllib.parse import unquote, urlsplit

from cocokaranavi.domain.batch import BatchResult
from cocokaranavi.domain.errors import (
    BackendUnavailableError,
    BadRequestError,
    StorageError,
    UnsupportedMethodError,
    UnsupportedPathError,
)
from cocokaranavi.domain.records import TABLES, Record
from cocokaranavi.domain.response import StorageResponse
from cocokaranavi.services.gateways.store import Store
from cocokaranavi.utils.query import (
    DEFAULT_PAGE_LIMIT,
    ListQuery,
    apply_list_query,
    chunked,
    list_envelope,
)

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

Body = Union[str, bytes, None]


class ParsedPath:
    """tables/<テーブル名>[/<ID>][?query] を分解したもの"""

    def __init__(self, table_name: str, record_id: Optional[str], query_string: str):
        self.table_name = table_name
        self.record_id = record_id
        self.query_string = query_string


class StorageAdapter:
    """どのバックエンドでも同じ fetch 形式で CRUD を行うアダプター"""

    def __init__(
        self,
        store: Store,
        tables: Sequence[str] = TABLES,
        default_limit: int = DEFAULT_PAGE_LIMIT,
        chunk_size: Optional[int] = None,
    ):
        """
        Args:
            store: 永続化先（起動時に一度だけ生成して注入する）
            tables: 受け付けるテーブル名
            default_limit: limit 未指定時の件数（小さいと一覧が黙って切り詰められる）
            chunk_size: batch_create のチャンクサイズ（未指定時は store の上限）
        """
        self._store = store
        self._tables = tuple(tables)
        self._default_limit = default_limit
        self._chunk_size = chunk_size

    @property
    def store(self) -> Store:
        return self._store

    @property
    def tables(self) -> Tuple[str, ...]:
        return self._tables

    def parse_path(self, path: str) -> ParsedPath:
        """パスを検証して分解する。不正なら I/O 前に UnsupportedPathError"""
        parts = urlsplit(path)
        segments = [unquote(s) for s in parts.path.split("/") if s]
        if not segments or segments[0] != "tables":
            raise UnsupportedPathError(f"無効なパス: {path}")
        if len(segments) < 2 or len(segments) > 3:
            raise UnsupportedPathError(f"無効なパス: {path}")
        table_name = segments[1]
        if table_name not in self._tables:
            raise UnsupportedPathError(f"サポートされていないテーブル: {table_name}")
        record_id = segments[2] if len(segments) == 3 else None
        return ParsedPath(table_name, record_id, parts.query)

    async def fetch(self, path: str, method: str = "GET", body: Body = None) -> StorageResponse:
        """
        fetch 互換のエントリーポイント

        Args:
            path: "tables/students" や "tables/students/<id>?limit=10" など
            method: GET / POST / PUT / PATCH / DELETE
            body: POST / PUT / PATCH のときの JSON 文字列

        Returns:
            StorageResponse。操作ごとの失敗はエンベロープに格納して返す

        Raises:
            UnsupportedPathError: tables 以外のパス、未知のテーブル
            UnsupportedMethodError: 未対応のメソッド
        """
        verb = (method or "GET").upper()
        if verb not in SUPPORTED_METHODS:
            raise UnsupportedMethodError(f"サポートされていないメソッド: {method}")
        parsed = self.parse_path(path)
        logger.debug("%s tables/%s%s", verb, parsed.table_name,
                     f"/{parsed.record_id}" if parsed.record_id else "")

        try:
            if verb == "GET":
                return await self._handle_get(parsed)
            if verb == "POST":
                return await self._handle_post(parsed, body)
            if verb == "PUT":
                return await self._handle_put(parsed, body)
            if verb == "PATCH":
                return await self._handle_patch(parsed, body)
            return await self._handle_delete(parsed)
        except StorageError as e:
            if e.status >= 500:
                logger.error("%s %s 失敗: %s", verb, path, e.message)
            return StorageResponse.failure(e.error, e.message, e.status)
        except Exception as e:
            logger.exception("%s %s で予期しないエラー", verb, path)
            return StorageResponse.failure(type(e).__name__, str(e) or "不明なエラーが発生しました", 500)

    async def batch_create(
        self,
        table_name: str,
        records: Sequence[Any],
        chunk_size: Optional[int] = None,
    ) -> BatchResult:
        """
        一括登録。テーブル名の検証以外で例外は送出しない

        チャンクごとに store へ渡し、結果を足し合わせる。
        あるチャンクで例外が漏れても、それまでのチャンクの成功件数は残る。
        """
        if table_name not in self._tables:
            raise UnsupportedPathError(f"サポートされていないテーブル: {table_name}")
        size = chunk_size or self._chunk_size or self._store.max_batch_size
        size = min(size, self._store.max_batch_size)

        result = BatchResult()
        total_chunks = (len(records) + size - 1) // size
        for start, chunk in chunked(records, size):
            chunk_range = f"{start}-{start + len(chunk)}"
            logger.debug("一括登録 %s: チャンク %d/%d (%d件)",
                         table_name, start // size + 1, total_chunks, len(chunk))
            try:
                chunk_result = await self._store.batch_create(table_name, chunk, size)
            except Exception as e:
                logger.exception("バッチ書き込みエラー: %s %s", table_name, chunk_range)
                result.add_failure(str(e), count=len(chunk), batch=chunk_range)
                continue
            # store から見た範囲はチャンク内の位置なので、全体での位置に置き換える
            for error in chunk_result.errors:
                if "batch" in error:
                    error["batch"] = chunk_range
            result.merge(chunk_result)
        return result

    async def _handle_get(self, parsed: ParsedPath) -> StorageResponse:
        if parsed.record_id:
            record = await self._store.get(parsed.table_name, parsed.record_id)
            return StorageResponse.success(record)

        query = ListQuery.from_query_string(parsed.query_string, self._default_limit)
        records = await self._store.list(parsed.table_name)
        page_data, total = apply_list_query(records, query)
        logger.debug("tables/%s ページ%d: %d件 (全%d件)",
                     parsed.table_name, query.page, len(page_data), total)
        return StorageResponse.success(list_envelope(page_data, total, query))

    async def _handle_post(self, parsed: ParsedPath, body: Body) -> StorageResponse:
        if parsed.record_id:
            raise BadRequestError("POST ではパスにレコードIDを指定できません")
        record = self._parse_record(body)
        created = await self._store.create(parsed.table_name, record)
        logger.info("レコード作成: %s/%s", parsed.table_name, created.get("id"))
        return StorageResponse.success(created, 201)

    async def _handle_put(self, parsed: ParsedPath, body: Body) -> StorageResponse:
        record_id = self._require_id(parsed)
        record = self._parse_record(body)
        updated = await self._store.replace(parsed.table_name, record_id, record)
        return StorageResponse.success(updated)

    async def _handle_patch(self, parsed: ParsedPath, body: Body) -> StorageResponse:
        record_id = self._require_id(parsed)
        patch = self._parse_record(body)
        merged = await self._store.merge(parsed.table_name, record_id, patch)
        return StorageResponse.success(merged)

    async def _handle_delete(self, parsed: ParsedPath) -> StorageResponse:
        record_id = self._require_id(parsed)
        await self._store.delete(parsed.table_name, record_id)
        logger.info("レコード削除: %s/%s (soft_delete=%s)",
                    parsed.table_name, record_id, self._store.soft_delete)
        return StorageResponse(status=204)

    @staticmethod
    def _require_id(parsed: ParsedPath) -> str:
        if not parsed.record_id:
            raise BadRequestError("レコードIDが必要です")
        return parsed.record_id

    @staticmethod
    def _parse_record(body: Body) -> Record:
        """本文を JSON オブジェクトとして解釈する。失敗したら BadRequestError"""
        if body is None:
            raise BadRequestError("本文がありません")
        try:
            data = json.loads(body)
        except (TypeError, ValueError):
            raise BadRequestError("不正なJSONデータ")
        if not isinstance(data, dict):
            raise BadRequestError("レコードは JSON オブジェクトである必要があります")
        return data

    async def fetch_all(self, table_name: str) -> List[Record]:
        """
        テーブルの全レコードを取得する（呼び出し側サービス向け）

        1ページは default_limit 件までなので、total に届くまでページを進める。
        """
        records: List[Record] = []
        page = 1
        while True:
            response = await self.fetch(
                f"tables/{table_name}?limit={self._default_limit}&page={page}"
            )
            body = await response.json()
            if not response.ok:
                raise BackendUnavailableError(body.get("message", response.status_text))
            records.extend(body["data"])
            if not body["data"] or len(records) >= body["total"]:
                return records
            page += 1
