import csv
import io
from datetime import datetime

import pytest

from cocokaranavi.domain.errors import BadRequestError
from cocokaranavi.services.csv_service import (
    BOM,
    DEFAULT_SUBJECT,
    REPORT_HEADERS,
    STUDENT_HEADERS,
    CsvService,
    export_consultation_report,
    export_students_csv,
    export_teachers_csv,
    parse_students_csv,
    parse_teachers_csv,
)
from cocokaranavi.services.storage_adapter import StorageAdapter


def _rows(content: str):
    assert content.startswith(BOM)
    return list(csv.reader(io.StringIO(content[len(BOM):])))


def test_parse_students_skips_invalid_rows() -> None:
    text = BOM + "学籍番号,氏名,学年,クラス\n" \
        "S001,山田太郎,1,A組\n" \
        "\n" \
        "S002,鈴木花子\n" \
        "S003,佐藤次郎,二,B組\n" \
        " S004 , 高橋三郎 , 2 , B組 \n"
    students = parse_students_csv(text)
    assert students == [
        {"id": "S001", "name": "山田太郎", "grade": 1, "class": "A組", "active": True},
        {"id": "S004", "name": "高橋三郎", "grade": 2, "class": "B組", "active": True},
    ]


def test_parse_teachers_pads_columns_and_defaults_subject() -> None:
    text = "教員名,担当学年,担当クラス,担当教科,役職,メール,電話,備考\n" \
        "田中先生,1年,A組,国語,担任,tanaka@example.com,000,\n" \
        "佐藤先生,2年\n" \
        ",3年,C組\n"
    teachers = parse_teachers_csv(text)
    assert [t["name"] for t in teachers] == ["田中先生", "佐藤先生"]
    assert teachers[0]["subject"] == "国語"
    assert teachers[0]["email"] == "tanaka@example.com"
    assert teachers[1]["subject"] == DEFAULT_SUBJECT
    assert teachers[1]["notes"] == ""


def test_export_students_only_active_sorted() -> None:
    students = [
        {"id": "3", "name": "c", "grade": 2, "class": "A", "active": True},
        {"id": "1", "name": "a", "grade": 1, "class": "B", "active": True},
        {"id": "2", "name": "b", "grade": 1, "class": "A", "active": True},
        {"id": "4", "name": "d", "grade": 1, "class": "A", "active": False},
    ]
    rows = _rows(export_students_csv(students))
    assert rows[0] == STUDENT_HEADERS
    assert [r[0] for r in rows[1:]] == ["2", "1", "3"]


def test_export_teachers_quotes_all_and_formats_date() -> None:
    created = int(datetime(2024, 4, 1, 9, 0).timestamp() * 1000)
    content = export_teachers_csv([{"name": "田中先生", "subject": "国語", "created_at": created}])
    assert '"田中先生"' in content
    row = _rows(content)[1]
    assert row[0] == "田中先生"
    assert row[-1] == "2024/4/1"


def test_consultation_report_joins_same_day_health_record() -> None:
    consultations = [
        {"student_id": "s1", "teacher_id": "t1", "consultation_content": "眠れない",
         "status": "新規", "date": "2024-05-01T10:05:09"},
        {"student_id": "ghost", "teacher_id": "nobody", "consultation_content": "?",
         "status": "対応中", "date": "2024-05-02T10:00:00"},
    ]
    students = [{"id": "s1", "name": "山田太郎", "grade": 1, "class": "A組"}]
    teachers = [{"id": "t1", "name": "田中先生"}]
    health_records = [
        {"student_id": "s1", "date": "2024-04-30T08:00:00", "mood": "bad"},
        {"student_id": "s1", "date": "2024-05-01T08:00:00", "mood": "good",
         "stress_level": 2, "symptoms": ["頭痛", "眠気"]},
    ]
    rows = _rows(export_consultation_report(consultations, students, teachers, health_records))
    assert rows[0] == REPORT_HEADERS
    assert rows[1] == [
        "2024/5/1 10:05:09", "山田太郎", "1年生", "A組", "田中先生", "眠れない",
        "新規", "", "good", "2", "頭痛, 眠気",
    ]
    assert rows[2][1] == "不明"
    assert rows[2][4] == "不明"
    assert rows[2][8:] == ["", "", ""]


async def test_import_students_batches_through_adapter(adapter: StorageAdapter) -> None:
    text = "学籍番号,氏名,学年,クラス\nS001,山田太郎,1,A組\nS002,鈴木花子,1,A組\n"
    result = await CsvService(adapter).import_students(text)
    assert result.success_count == 2
    assert result.failed_count == 0
    record = await adapter.store.get("students", "S001")
    assert record["name"] == "山田太郎"


async def test_import_without_valid_rows_is_rejected(adapter: StorageAdapter) -> None:
    with pytest.raises(BadRequestError):
        await CsvService(adapter).import_students("学籍番号,氏名,学年,クラス\n")
    with pytest.raises(BadRequestError):
        await CsvService(adapter).import_teachers("")


async def test_export_students_reads_from_adapter(adapter: StorageAdapter) -> None:
    await adapter.store.create("students", {"id": "S1", "name": "a", "grade": 1, "class": "A", "active": True})
    rows = _rows(await CsvService(adapter).export_students())
    assert rows[1] == ["S1", "a", "1", "A"]


def test_export_students_tolerates_mixed_grade_types() -> None:
    students = [
        {"id": "a", "grade": "3", "class": "A", "active": True},
        {"id": "b", "grade": 1, "class": "A", "active": True},
        {"id": "c", "grade": "特別", "class": "A", "active": True},
        {"id": "d", "grade": 2, "class": "A", "active": True},
    ]
    rows = _rows(export_students_csv(students))
    assert [r[0] for r in rows[1:]] == ["b", "d", "a", "c"]
