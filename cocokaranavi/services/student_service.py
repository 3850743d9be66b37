"""児童の削除に関するアプリケーションサービス"""

import logging
from typing import Any, Dict
from urllib.parse import quote

from cocokaranavi.domain.errors import NotFoundError
from cocokaranavi.domain.records import TABLE_CONSULTATIONS, TABLE_HEALTH_RECORDS, TABLE_STUDENTS
from cocokaranavi.services.storage_adapter import StorageAdapter

logger = logging.getLogger(__name__)


class StudentService:
    """ストレージは参照整合性を持たないため、関連レコードの削除はここで行う"""

    def __init__(self, adapter: StorageAdapter):
        self._adapter = adapter

    async def delete_student(self, student_id: str) -> Dict[str, Any]:
        """
        児童と、その児童の健康記録・相談記録を 1 件ずつ削除する

        関連レコードの削除失敗はログに残して数えるだけで、処理は続行する。

        Raises:
            NotFoundError: 児童が存在しない
        """
        response = await self._adapter.fetch(f"tables/{TABLE_STUDENTS}/{quote(student_id, safe='')}", method="DELETE")
        if response.status == 404:
            raise NotFoundError(TABLE_STUDENTS, student_id)
        if not response.ok:
            body = await response.json()
            return {"success": False, "error": body.get("message", response.status_text)}

        summary: Dict[str, Any] = {
            "success": True,
            "deleted": student_id,
            TABLE_HEALTH_RECORDS: 0,
            TABLE_CONSULTATIONS: 0,
            "failed": 0,
        }
        for table_name in (TABLE_HEALTH_RECORDS, TABLE_CONSULTATIONS):
            dependants = [
                r for r in await self._adapter.fetch_all(table_name)
                if r.get("student_id") == student_id and not r.get("deleted")
            ]
            for record in dependants:
                resp = await self._adapter.fetch(f"tables/{table_name}/{quote(str(record['id']), safe='')}", method="DELETE")
                if resp.ok:
                    summary[table_name] += 1
                else:
                    logger.warning("%s の削除に失敗: %s (%d)", table_name, record["id"], resp.status)
                    summary["failed"] += 1
        logger.info("児童削除完了: %s", summary)
        return summary
