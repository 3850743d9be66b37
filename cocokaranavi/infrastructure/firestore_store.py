"""Firestore をテーブルストアとして使うゲートウェイ"""

import functools
import inspect
import logging
from typing import Any, List, Mapping, Optional, Sequence

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from cocokaranavi.domain.batch import BatchResult
from cocokaranavi.domain.errors import BackendUnavailableError, NotFoundError
from cocokaranavi.domain.records import Record, now_millis
from cocokaranavi.utils.query import chunked, sort_records

logger = logging.getLogger(__name__)

# Firestore のバッチ書き込み上限
FIRESTORE_BATCH_LIMIT = 500
CONNECTION_TEST_COLLECTION = "_connection_test"


def get_firestore_client(project_id: Optional[str] = None, database: Optional[str] = None):
    """AsyncClient を生成（認証は GOOGLE_APPLICATION_CREDENTIALS / ADC に従う）"""
    kwargs = {}
    if project_id:
        kwargs["project"] = project_id
    if database:
        kwargs["database"] = database
    return firestore.AsyncClient(**kwargs)


def _translate_errors(func):
    """Firestore の API エラーを BackendUnavailableError に変換する"""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except google_exceptions.GoogleAPIError as e:
            raise BackendUnavailableError(f"Firestore エラー: {e}") from e

    return wrapper


class FirestoreStore:
    """
    コレクション = テーブル、ドキュメント = レコードとして扱う

    既定では論理削除（deleted=True を立てる）。
    一括登録はチャンクごとに WriteBatch でまとめてコミットする。
    """

    name = "firestore"
    max_batch_size = FIRESTORE_BATCH_LIMIT

    def __init__(self, client, soft_delete: bool = True):
        """
        Args:
            client: google.cloud.firestore.AsyncClient（起動時に一度だけ生成）
            soft_delete: True なら論理削除、False なら物理削除
        """
        self._client = client
        self.soft_delete = soft_delete

    def _collection(self, table_name: str):
        return self._client.collection(table_name)

    async def _existing(self, table_name: str, record_id: str):
        doc_ref = self._collection(table_name).document(record_id)
        snapshot = await doc_ref.get()
        if not snapshot.exists:
            raise NotFoundError(table_name, record_id)
        return doc_ref, snapshot

    @staticmethod
    def _to_record(snapshot) -> Record:
        return {"id": snapshot.id, **(snapshot.to_dict() or {})}

    def _prepare(self, table_name: str, record: Mapping[str, Any], now: int):
        """システムフィールドを付与し、(ドキュメント参照, データ) を返す"""
        collection = self._collection(table_name)
        data = {**record, "created_at": now, "updated_at": now, "gs_table_name": table_name}
        # IDが指定されている場合はそれを使用、なければ自動生成
        if record.get("id"):
            doc_ref = collection.document(str(record["id"]))
        else:
            doc_ref = collection.document()
            data["id"] = doc_ref.id
        return doc_ref, data

    @_translate_errors
    async def get(self, table_name: str, record_id: str) -> Record:
        _, snapshot = await self._existing(table_name, record_id)
        return self._to_record(snapshot)

    @_translate_errors
    async def list(self, table_name: str) -> List[Record]:
        records = [self._to_record(s) async for s in self._collection(table_name).stream()]
        logger.debug("[FirestoreStore] 全レコード取得: %s %d件", table_name, len(records))
        return sort_records(records, "created_at")

    @_translate_errors
    async def create(self, table_name: str, record: Record) -> Record:
        doc_ref, data = self._prepare(table_name, record, now_millis())
        await doc_ref.set(data)
        logger.info("[FirestoreStore] レコード作成成功: %s/%s", table_name, data["id"])
        return data

    @_translate_errors
    async def replace(self, table_name: str, record_id: str, record: Record) -> Record:
        doc_ref, snapshot = await self._existing(table_name, record_id)
        current = snapshot.to_dict() or {}
        data = {
            **record,
            "id": record_id,
            "created_at": current.get("created_at"),
            "updated_at": now_millis(),
        }
        await doc_ref.set(data, merge=False)
        return data

    @_translate_errors
    async def merge(self, table_name: str, record_id: str, patch: Record) -> Record:
        # update() はキーの "." をフィールドパスとして解釈するため、結合済みの全体を set する
        doc_ref, snapshot = await self._existing(table_name, record_id)
        merged = {**self._to_record(snapshot), **patch, "id": record_id, "updated_at": now_millis()}
        await doc_ref.set(merged)
        return merged

    @_translate_errors
    async def delete(self, table_name: str, record_id: str) -> None:
        doc_ref, _ = await self._existing(table_name, record_id)
        if self.soft_delete:
            await doc_ref.update({"deleted": True, "updated_at": now_millis()})
        else:
            await doc_ref.delete()

    async def batch_create(
        self,
        table_name: str,
        records: Sequence[Any],
        chunk_size: Optional[int] = None,
    ) -> BatchResult:
        """
        チャンク単位で WriteBatch をコミットする

        コミット失敗時はチャンク全体を失敗として数える。
        先にコミット済みのチャンクは取り消さない。
        """
        size = min(chunk_size or FIRESTORE_BATCH_LIMIT, FIRESTORE_BATCH_LIMIT)
        result = BatchResult()
        total_chunks = (len(records) + size - 1) // size
        logger.info("[FirestoreStore] バッチ書き込み開始: %s %d件", table_name, len(records))

        for start, chunk in chunked(records, size):
            logger.info("[FirestoreStore] バッチ %d/%d: %d件処理中...",
                        start // size + 1, total_chunks, len(chunk))
            batch = self._client.batch()
            now = now_millis()
            prepared = 0
            for record in chunk:
                try:
                    if not isinstance(record, Mapping):
                        raise TypeError("レコードはオブジェクトである必要があります")
                    doc_ref, data = self._prepare(table_name, record, now)
                    batch.set(doc_ref, data)
                    prepared += 1
                except Exception as e:
                    logger.error("[FirestoreStore] レコード準備エラー: %s", e)
                    result.add_failure(str(e), record=record)

            if not prepared:
                continue
            try:
                await batch.commit()
                result.add_success(prepared)
            except Exception as e:
                logger.error("[FirestoreStore] バッチコミットエラー: %s", e)
                result.add_failure(str(e), count=prepared, batch=f"{start}-{start + len(chunk)}")

        logger.info("[FirestoreStore] バッチ書き込み完了: 成功%d件, 失敗%d件",
                    result.success_count, result.failed_count)
        return result

    @_translate_errors
    async def replace_table(self, table_name: str, records: Sequence[Record]) -> None:
        """既存ドキュメントを全て削除してから書き込む（バッチ上限ごとにコミット）"""
        existing = [s.reference async for s in self._collection(table_name).stream()]
        for _, refs in chunked(existing, FIRESTORE_BATCH_LIMIT):
            batch = self._client.batch()
            for ref in refs:
                batch.delete(ref)
            await batch.commit()

        collection = self._collection(table_name)
        for _, chunk in chunked(list(records), FIRESTORE_BATCH_LIMIT):
            batch = self._client.batch()
            for record in chunk:
                doc_ref = collection.document(str(record["id"])) if record.get("id") else collection.document()
                batch.set(doc_ref, {**record, "id": doc_ref.id})
            await batch.commit()
        logger.info("[FirestoreStore] %s を%d件で置き換えました", table_name, len(records))

    async def ping(self) -> bool:
        """テスト用ドキュメントの書き込み・読み取り・削除で接続を確認する"""
        try:
            test_ref = self._collection(CONNECTION_TEST_COLLECTION).document("test")
            await test_ref.set({"timestamp": now_millis(), "message": "接続テスト成功"})
            snapshot = await test_ref.get()
            if not snapshot.exists:
                logger.error("[FirestoreStore] テストデータの読み取りに失敗しました")
                return False
            await test_ref.delete()
            return True
        except Exception:
            logger.exception("[FirestoreStore] 接続テストエラー")
            return False

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result
