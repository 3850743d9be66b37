"""テーブルとレコードのドメイン定義"""

import random
import string
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Tuple

# レコードは型なしの辞書として扱う
Record = Dict[str, Any]

TABLE_STUDENTS = "students"
TABLE_TEACHERS = "teachers"
TABLE_HEALTH_RECORDS = "health_records"
TABLE_CONSULTATIONS = "consultations"

TABLES: Tuple[str, ...] = (
    TABLE_STUDENTS,
    TABLE_TEACHERS,
    TABLE_HEALTH_RECORDS,
    TABLE_CONSULTATIONS,
)


class ConsultationStatus(str, Enum):
    """相談のステータス（遷移の妥当性は画面側で扱う）"""
    NEW = "新規"
    ACKNOWLEDGED = "確認済み"
    IN_PROGRESS = "対応中"
    RESOLVED = "解決済み"


_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def now_millis() -> int:
    """現在時刻（エポックミリ秒）"""
    return int(time.time() * 1000)


def now_iso() -> str:
    """現在時刻（ISO-8601, UTC）"""
    return datetime.now(timezone.utc).isoformat()


def generate_table_id(table_name: str) -> str:
    """
    テーブル名を接頭辞にしたID を生成する

    例: students_lz3k9x1a_4f8kq2m0c1
    """
    timestamp = _to_base36(now_millis())
    suffix = "".join(random.choices(_BASE36, k=10))
    return f"{table_name}_{timestamp}_{suffix}"


def generate_uuid() -> str:
    return str(uuid.uuid4())
