"""名簿CSVの取り込み・書き出しに関するアプリケーションサービス"""

import csv
import io
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from cocokaranavi.domain.batch import BatchResult
from cocokaranavi.domain.errors import BadRequestError
from cocokaranavi.domain.records import (
    TABLE_CONSULTATIONS,
    TABLE_HEALTH_RECORDS,
    TABLE_STUDENTS,
    TABLE_TEACHERS,
    Record,
)
from cocokaranavi.services.storage_adapter import StorageAdapter

logger = logging.getLogger(__name__)

# Excel で文字化けしないよう先頭に付ける
BOM = "\ufeff"

STUDENT_HEADERS = ["学籍番号", "氏名", "学年", "クラス"]
TEACHER_HEADERS = [
    "教員名", "担当学年", "担当クラス", "担当教科", "役職",
    "メールアドレス", "電話番号", "備考", "登録日",
]
REPORT_HEADERS = [
    "日時", "児童名", "学年", "クラス", "相談先教員", "相談内容",
    "ステータス", "教員からの返答", "気分", "ストレスレベル", "症状",
]
DEFAULT_SUBJECT = "担当教科未設定"


def _read_rows(csv_text: str) -> List[List[str]]:
    """BOM を除去し、ヘッダー行と空行を除いたデータ行を返す"""
    text = csv_text.lstrip(BOM)
    rows = [
        [column.strip() for column in row]
        for row in csv.reader(io.StringIO(text))
        if any(column.strip() for column in row)
    ]
    return rows[1:]


def _write_csv(rows: Iterable[Sequence[Any]], quoting: int) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=quoting, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return BOM + buffer.getvalue()


def _to_datetime(value: Any) -> Optional[datetime]:
    """エポックミリ秒または ISO-8601 文字列を datetime に変換する"""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _format_date(value: Any) -> str:
    dt = _to_datetime(value)
    return f"{dt.year}/{dt.month}/{dt.day}" if dt else ""


def _format_datetime(value: Any) -> str:
    dt = _to_datetime(value)
    if not dt:
        return ""
    return f"{dt.year}/{dt.month}/{dt.day} {dt.hour}:{dt.minute:02d}:{dt.second:02d}"


def parse_students_csv(csv_text: str) -> List[Record]:
    """学籍番号,氏名,学年,クラス の CSV を児童レコードに変換する"""
    students = []
    for line_no, columns in enumerate(_read_rows(csv_text), start=2):
        if len(columns) < 4:
            logger.warning("%d行目: データ不足（%d列）%s", line_no, len(columns), columns)
            continue
        try:
            grade = int(columns[2])
        except ValueError:
            logger.warning("%d行目: 学年が数値ではありません: %s", line_no, columns[2])
            continue
        students.append({
            "id": columns[0],
            "name": columns[1],
            "grade": grade,
            "class": columns[3],
            "active": True,
        })
    logger.info("CSV解析結果: %d名の児童データを取得", len(students))
    return students


def parse_teachers_csv(csv_text: str) -> List[Record]:
    """教員名,担当学年,担当クラス,担当教科,役職,メール,電話,備考 の CSV を教員レコードに変換する"""
    teachers = []
    for columns in _read_rows(csv_text):
        if not columns or not columns[0]:
            continue
        padded = columns + [""] * (8 - len(columns))
        teachers.append({
            "name": padded[0],
            "grade": padded[1],
            "class": padded[2],
            "subject": padded[3] or DEFAULT_SUBJECT,
            "position": padded[4],
            "email": padded[5],
            "phone": padded[6],
            "notes": padded[7],
            "active": True,
        })
    return teachers


def _grade_key(value: Any) -> Tuple[int, float, str]:
    """学年の並び替えキー。"2" のような文字列も数値として扱い、数値にできないものは後ろに回す"""
    if value is None or value == "":
        return (0, 0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    try:
        return (0, int(str(value).strip()), "")
    except ValueError:
        return (1, 0, str(value))


def export_students_csv(students: Sequence[Record]) -> str:
    """在籍中の児童を学年・クラス順に書き出す"""
    active = [s for s in students if s.get("active")]
    ordered = sorted(active, key=lambda s: (_grade_key(s.get("grade")), str(s.get("class") or "")))
    rows = [STUDENT_HEADERS]
    rows.extend([s.get("id"), s.get("name"), s.get("grade"), s.get("class")] for s in ordered)
    return _write_csv(rows, csv.QUOTE_MINIMAL)


def export_teachers_csv(teachers: Sequence[Record]) -> str:
    rows = [TEACHER_HEADERS]
    for t in teachers:
        rows.append([
            t.get("name"), t.get("grade"), t.get("class"), t.get("subject"),
            t.get("position"), t.get("email"), t.get("phone"), t.get("notes"),
            _format_date(t.get("created_at")),
        ])
    return _write_csv(rows, csv.QUOTE_ALL)


def export_consultation_report(
    consultations: Sequence[Record],
    students: Sequence[Record],
    teachers: Sequence[Record],
    health_records: Sequence[Record],
) -> str:
    """相談ごとに児童・教員・同日の健康記録を結合したレポートを書き出す"""
    students_by_id: Dict[Any, Record] = {s.get("id"): s for s in students}
    teachers_by_id: Dict[Any, Record] = {t.get("id"): t for t in teachers}

    rows = [REPORT_HEADERS]
    for consultation in consultations:
        student = students_by_id.get(consultation.get("student_id"))
        teacher = teachers_by_id.get(consultation.get("teacher_id"))
        consulted_at = _to_datetime(consultation.get("date"))
        health = None
        if consulted_at:
            health = next(
                (
                    hr for hr in health_records
                    if hr.get("student_id") == consultation.get("student_id")
                    and (_to_datetime(hr.get("date")) or datetime.min).date() == consulted_at.date()
                ),
                None,
            )
        rows.append([
            _format_datetime(consultation.get("date")),
            student.get("name") if student else "不明",
            f"{student.get('grade')}年生" if student else "",
            student.get("class") if student else "",
            teacher.get("name") if teacher else "不明",
            consultation.get("consultation_content"),
            consultation.get("status"),
            consultation.get("teacher_response") or "",
            health.get("mood") if health else "",
            health.get("stress_level") if health else "",
            ", ".join(health.get("symptoms") or []) if health else "",
        ])
    return _write_csv(rows, csv.QUOTE_ALL)


class CsvService:
    """CSV 一括登録・書き出しのユースケースを扱うサービス"""

    def __init__(self, adapter: StorageAdapter):
        """
        Args:
            adapter: 永続化先に依存しないストレージアダプター
        """
        self._adapter = adapter

    async def import_students(self, csv_text: str, chunk_size: Optional[int] = None) -> BatchResult:
        students = parse_students_csv(csv_text)
        if not students:
            raise BadRequestError("有効なデータが見つかりませんでした")
        logger.info("CSV一括登録開始: %d名", len(students))
        return await self._adapter.batch_create(TABLE_STUDENTS, students, chunk_size)

    async def import_teachers(self, csv_text: str, chunk_size: Optional[int] = None) -> BatchResult:
        teachers = parse_teachers_csv(csv_text)
        if not teachers:
            raise BadRequestError("有効なデータが見つかりませんでした")
        return await self._adapter.batch_create(TABLE_TEACHERS, teachers, chunk_size)

    async def export_students(self) -> str:
        return export_students_csv(await self._adapter.fetch_all(TABLE_STUDENTS))

    async def export_teachers(self) -> str:
        return export_teachers_csv(await self._adapter.fetch_all(TABLE_TEACHERS))

    async def export_consultations(self) -> str:
        return export_consultation_report(
            await self._adapter.fetch_all(TABLE_CONSULTATIONS),
            await self._adapter.fetch_all(TABLE_STUDENTS),
            await self._adapter.fetch_all(TABLE_TEACHERS),
            await self._adapter.fetch_all(TABLE_HEALTH_RECORDS),
        )
