"""Supabase (PostgREST) をテーブルストアとして使うゲートウェイ"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from cocokaranavi.domain.batch import BatchResult
from cocokaranavi.domain.errors import BackendUnavailableError, NotFoundError
from cocokaranavi.domain.records import Record, generate_uuid, now_iso
from cocokaranavi.utils.query import chunked

logger = logging.getLogger(__name__)

SUPABASE_BATCH_LIMIT = 1000


class SupabaseStore:
    """
    /rest/v1/<テーブル名> に対して CRUD を行う

    タイムスタンプは ISO-8601 文字列。既定では物理削除。
    一括登録はチャンクごとに 1 回の一括 INSERT（チャンク単位で成否が決まる）。
    """

    name = "supabase"
    max_batch_size = SUPABASE_BATCH_LIMIT

    def __init__(
        self,
        url: str,
        key: str,
        soft_delete: bool = False,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._base_url = url.rstrip("/") + "/rest/v1"
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.soft_delete = soft_delete

    def _url(self, table_name: str) -> str:
        return f"{self._base_url}/{table_name}"

    async def _request(
        self,
        method: str,
        table_name: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        upsert: bool = False,
    ) -> Any:
        headers = dict(self._headers)
        if upsert:
            headers["Prefer"] = "return=representation,resolution=merge-duplicates"
        try:
            resp = await self._client.request(
                method, self._url(table_name), params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise BackendUnavailableError(f"Supabase 通信エラー: {e}") from e
        if resp.status_code >= 400:
            logger.error("[SupabaseStore] %s %s 失敗: %d %s",
                         method, table_name, resp.status_code, resp.text)
            raise BackendUnavailableError(
                f"Supabase エラー ({resp.status_code}): {resp.text}"
            )
        if not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _first(rows: Any) -> Optional[Record]:
        if isinstance(rows, list):
            return rows[0] if rows else None
        return rows

    def _prepare(self, record: Mapping[str, Any], now: str) -> Record:
        prepared = dict(record)
        if not prepared.get("id"):
            prepared["id"] = generate_uuid()
        prepared["created_at"] = now
        prepared["updated_at"] = now
        return prepared

    async def get(self, table_name: str, record_id: str) -> Record:
        rows = await self._request("GET", table_name, params={"id": f"eq.{record_id}", "select": "*"})
        record = self._first(rows)
        if not record:
            raise NotFoundError(table_name, record_id)
        return record

    async def list(self, table_name: str) -> List[Record]:
        rows = await self._request("GET", table_name, params={"select": "*", "order": "created_at.asc"})
        return list(rows or [])

    async def create(self, table_name: str, record: Record) -> Record:
        prepared = self._prepare(record, now_iso())
        rows = await self._request(
            "POST", table_name, params={"on_conflict": "id"}, json=prepared, upsert=True
        )
        return self._first(rows) or prepared

    async def replace(self, table_name: str, record_id: str, record: Record) -> Record:
        current = await self.get(table_name, record_id)
        data = {
            **record,
            "id": record_id,
            "created_at": current.get("created_at"),
            "updated_at": now_iso(),
        }
        # PATCH では既存の列が残るため、body に無い列は null で上書きする
        for column in current:
            data.setdefault(column, None)
        rows = await self._request("PATCH", table_name, params={"id": f"eq.{record_id}"}, json=data)
        return self._first(rows) or data

    async def merge(self, table_name: str, record_id: str, patch: Record) -> Record:
        await self.get(table_name, record_id)
        data = {**patch, "id": record_id, "updated_at": now_iso()}
        rows = await self._request("PATCH", table_name, params={"id": f"eq.{record_id}"}, json=data)
        merged = self._first(rows)
        if not merged:
            raise NotFoundError(table_name, record_id)
        return merged

    async def delete(self, table_name: str, record_id: str) -> None:
        await self.get(table_name, record_id)
        params = {"id": f"eq.{record_id}"}
        if self.soft_delete:
            await self._request("PATCH", table_name, params=params,
                                json={"deleted": True, "updated_at": now_iso()})
        else:
            await self._request("DELETE", table_name, params=params)

    async def batch_create(
        self,
        table_name: str,
        records: Sequence[Any],
        chunk_size: Optional[int] = None,
    ) -> BatchResult:
        """チャンクごとに一括 INSERT。失敗時はそのチャンク全体を失敗として数える"""
        size = min(chunk_size or SUPABASE_BATCH_LIMIT, SUPABASE_BATCH_LIMIT)
        result = BatchResult()
        for start, chunk in chunked(records, size):
            now = now_iso()
            rows = []
            for record in chunk:
                if not isinstance(record, Mapping):
                    result.add_failure("レコードはオブジェクトである必要があります", record=record)
                    continue
                rows.append(self._prepare(record, now))
            if not rows:
                continue
            try:
                await self._request("POST", table_name, params={"on_conflict": "id"}, json=rows, upsert=True)
                result.add_success(len(rows))
            except Exception as e:
                # JSON 化できない値（datetime など）もここでチャンクの失敗として数える
                logger.error("[SupabaseStore] バッチ登録エラー: %s", e)
                result.add_failure(str(e), count=len(rows), batch=f"{start}-{start + len(chunk)}")

        logger.info("[SupabaseStore] バッチ作成完了: 成功%d件, 失敗%d件",
                    result.success_count, result.failed_count)
        return result

    async def replace_table(self, table_name: str, records: Sequence[Record]) -> None:
        await self._request("DELETE", table_name, params={"id": "not.is.null"})
        for _, chunk in chunked(list(records), SUPABASE_BATCH_LIMIT):
            await self._request("POST", table_name, json=[dict(r) for r in chunk])

    async def ping(self) -> bool:
        try:
            await self._request("GET", "students", params={"select": "id", "limit": "1"})
            return True
        except BackendUnavailableError:
            return False

    async def aclose(self) -> None:
        await self._client.aclose()
