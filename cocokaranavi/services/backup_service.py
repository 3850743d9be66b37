"""全データのバックアップ・復元・移行に関するアプリケーションサービス"""

import logging
from typing import Any, Dict, Optional, Sequence

from cocokaranavi.domain.errors import BadRequestError
from cocokaranavi.domain.records import TABLES, now_iso
from cocokaranavi.services.gateways.store import Store

logger = logging.getLogger(__name__)


class BackupService:
    """JSON スナップショット（テーブルごとの配列 + exported_at）を扱うサービス"""

    def __init__(self, store: Store, tables: Sequence[str] = TABLES):
        self._store = store
        self._tables = tuple(tables)

    async def export_snapshot(self) -> Dict[str, Any]:
        snapshot: Dict[str, Any] = {}
        for table_name in self._tables:
            snapshot[table_name] = await self._store.list(table_name)
        snapshot["exported_at"] = now_iso()
        return snapshot

    async def restore_snapshot(self, snapshot: Any) -> Dict[str, int]:
        """
        スナップショットに含まれるテーブルの中身を丸ごと置き換える

        Returns:
            テーブル名ごとの復元件数（含まれないテーブルは対象外）
        """
        if not isinstance(snapshot, dict):
            raise BadRequestError("スナップショットは JSON オブジェクトである必要があります")
        restored: Dict[str, int] = {}
        for table_name in self._tables:
            records = snapshot.get(table_name)
            if records is None:
                continue
            if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
                raise BadRequestError(f"{table_name} はレコードの配列である必要があります")
            await self._store.replace_table(table_name, records)
            restored[table_name] = len(records)
        logger.info("データインポート完了: %s", restored)
        return restored

    async def migrate(self, target: Store, chunk_size: Optional[int] = None) -> Dict[str, Any]:
        """
        このサービスのストアから target へ全テーブルを一括登録で移行する

        テーブル単位で失敗しても残りのテーブルは続行し、件数を -1 とする。
        """
        details: Dict[str, int] = {}
        total = 0
        for table_name in self._tables:
            try:
                records = await self._store.list(table_name)
                if not records:
                    details[table_name] = 0
                    continue
                result = await target.batch_create(table_name, records, chunk_size)
                if result.failed_count:
                    logger.error("%s 移行エラー: %s", table_name, result.errors)
                details[table_name] = result.success_count
                total += result.success_count
            except Exception:
                logger.exception("%s 移行エラー", table_name)
                details[table_name] = -1

        logger.info("データ移行完了: %s", details)
        return {
            "success": all(count >= 0 for count in details.values()),
            "message": f"合計{total}件のデータを移行しました",
            "details": details,
        }
