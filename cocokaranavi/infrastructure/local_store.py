"""キーバリューストレージにテーブルごとの JSON 配列として保存するストア"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from cocokaranavi.domain.batch import BatchResult
from cocokaranavi.domain.errors import BackendUnavailableError, NotFoundError
from cocokaranavi.domain.records import (
    TABLE_STUDENTS,
    TABLE_TEACHERS,
    TABLES,
    Record,
    generate_table_id,
    now_millis,
)
from cocokaranavi.infrastructure.kv_storage import KeyValueStorage, MemoryKeyValueStorage
from cocokaranavi.utils.query import chunked

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "cocokaranavi_"

# 初回アクセス時のサンプルデータ
DEFAULT_DATA: Dict[str, List[Record]] = {
    TABLE_TEACHERS: [
        {
            "id": "teacher_001",
            "name": "田中先生",
            "subject": "1年担任",
            "grade": "1年",
            "class": "A組",
            "position": "担任",
            "active": True,
        },
        {
            "id": "teacher_002",
            "name": "佐藤先生",
            "subject": "2年担任",
            "grade": "2年",
            "class": "B組",
            "position": "担任",
            "active": True,
        },
    ],
    TABLE_STUDENTS: [
        {"id": "student_001", "name": "山田太郎", "grade": 1, "class": "A組", "active": True},
        {"id": "student_002", "name": "鈴木花子", "grade": 1, "class": "A組", "active": True},
    ],
}


class LocalStore:
    """
    ブラウザの localStorage 相当のストア

    トランザクションは無く、一括登録もレコード単位で成否を判定する。
    既定では物理削除。
    """

    name = "local"
    max_batch_size = 1000

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        soft_delete: bool = False,
        seed_defaults: bool = True,
        tables: Sequence[str] = TABLES,
    ):
        self._storage = storage if storage is not None else MemoryKeyValueStorage()
        self.soft_delete = soft_delete
        self._tables = tuple(tables)
        self._seed_defaults = seed_defaults
        if seed_defaults:
            self._initialize_default_data()

    def _initialize_default_data(self) -> None:
        for table_name in self._tables:
            if self._storage.get_item(STORAGE_PREFIX + table_name) is None:
                now = now_millis()
                rows = [
                    {**r, "created_at": now, "updated_at": now}
                    for r in DEFAULT_DATA.get(table_name, [])
                ]
                self._save(table_name, rows)

    def _load(self, table_name: str) -> List[Record]:
        raw = self._storage.get_item(STORAGE_PREFIX + table_name)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise BackendUnavailableError(f"データ取得エラー: {table_name}: {e}")
        if not isinstance(data, list):
            raise BackendUnavailableError(f"データ形式が不正です: {table_name}")
        return data

    def _save(self, table_name: str, records: List[Record]) -> None:
        try:
            self._storage.set_item(STORAGE_PREFIX + table_name, json.dumps(records, ensure_ascii=False))
        except (OSError, TypeError, ValueError) as e:
            raise BackendUnavailableError(f"データ保存エラー: {table_name}: {e}")

    @staticmethod
    def _index_of(records: List[Record], record_id: str) -> int:
        for i, item in enumerate(records):
            if item.get("id") == record_id:
                return i
        return -1

    def _prepare(self, table_name: str, record: Mapping[str, Any], now: int) -> Record:
        prepared = dict(record)
        if not prepared.get("id"):
            prepared["id"] = generate_table_id(table_name)
        prepared["created_at"] = now
        prepared["updated_at"] = now
        return prepared

    @staticmethod
    def _upsert(records: List[Record], record: Record) -> None:
        index = LocalStore._index_of(records, record["id"])
        if index == -1:
            records.append(record)
        else:
            records[index] = record

    async def get(self, table_name: str, record_id: str) -> Record:
        records = self._load(table_name)
        index = self._index_of(records, record_id)
        if index == -1:
            raise NotFoundError(table_name, record_id)
        return records[index]

    async def list(self, table_name: str) -> List[Record]:
        return self._load(table_name)

    async def create(self, table_name: str, record: Record) -> Record:
        records = self._load(table_name)
        prepared = self._prepare(table_name, record, now_millis())
        self._upsert(records, prepared)
        self._save(table_name, records)
        return prepared

    async def replace(self, table_name: str, record_id: str, record: Record) -> Record:
        records = self._load(table_name)
        index = self._index_of(records, record_id)
        if index == -1:
            raise NotFoundError(table_name, record_id)
        current = records[index]
        replaced = {
            **record,
            "id": record_id,
            "created_at": current.get("created_at"),
            "updated_at": now_millis(),
        }
        records[index] = replaced
        self._save(table_name, records)
        return replaced

    async def merge(self, table_name: str, record_id: str, patch: Record) -> Record:
        records = self._load(table_name)
        index = self._index_of(records, record_id)
        if index == -1:
            raise NotFoundError(table_name, record_id)
        merged = {**records[index], **patch, "id": record_id, "updated_at": now_millis()}
        records[index] = merged
        self._save(table_name, records)
        return merged

    async def delete(self, table_name: str, record_id: str) -> None:
        records = self._load(table_name)
        index = self._index_of(records, record_id)
        if index == -1:
            raise NotFoundError(table_name, record_id)
        if self.soft_delete:
            records[index] = {**records[index], "deleted": True, "updated_at": now_millis()}
        else:
            del records[index]
        self._save(table_name, records)

    async def batch_create(
        self,
        table_name: str,
        records: Sequence[Any],
        chunk_size: Optional[int] = None,
    ) -> BatchResult:
        """チャンクごとに保存する。失敗はレコード単位で集計し、残りの処理は続ける"""
        size = min(chunk_size or self.max_batch_size, self.max_batch_size)
        result = BatchResult()
        total_chunks = (len(records) + size - 1) // size
        for start, chunk in chunked(records, size):
            logger.info("[LocalStore] バッチ %d/%d: %d件処理中...",
                        start // size + 1, total_chunks, len(chunk))
            try:
                stored = self._load(table_name)
            except BackendUnavailableError as e:
                for record in chunk:
                    result.add_failure(e.message, record=record)
                continue

            now = now_millis()
            prepared: List[Record] = []
            for record in chunk:
                if not isinstance(record, Mapping):
                    result.add_failure("レコードはオブジェクトである必要があります", record=record)
                    continue
                item = self._prepare(table_name, record, now)
                # JSON にできないレコードはチャンク全体を巻き込まないよう先に弾く
                try:
                    json.dumps(item, ensure_ascii=False)
                except (TypeError, ValueError) as e:
                    result.add_failure(f"JSONに変換できないレコード: {e}", record=record)
                    continue
                self._upsert(stored, item)
                prepared.append(item)

            try:
                self._save(table_name, stored)
            except BackendUnavailableError as e:
                for item in prepared:
                    result.add_failure(e.message, record=item)
                continue
            result.add_success(len(prepared))

        logger.info("[LocalStore] バッチ書き込み完了: 成功%d件, 失敗%d件",
                    result.success_count, result.failed_count)
        return result

    async def replace_table(self, table_name: str, records: Sequence[Record]) -> None:
        self._save(table_name, [dict(r) for r in records])

    def clear_all(self) -> None:
        """全データ削除（リセット用）。サンプルデータ設定時は再投入する"""
        for key in self._storage.keys():
            if key.startswith(STORAGE_PREFIX):
                self._storage.remove_item(key)
        if self._seed_defaults:
            self._initialize_default_data()

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None
