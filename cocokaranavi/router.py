"""全てのルーティングを管理"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from cocokaranavi.domain.errors import BadRequestError
from cocokaranavi.domain.response import StorageResponse
from cocokaranavi.infrastructure.config import StorageConfig
from cocokaranavi.infrastructure.kv_storage import FileKeyValueStorage
from cocokaranavi.infrastructure.local_store import LocalStore
from cocokaranavi.services.backup_service import BackupService
from cocokaranavi.services.csv_service import CsvService
from cocokaranavi.services.storage_adapter import StorageAdapter
from cocokaranavi.services.student_service import StudentService
from cocokaranavi.schemas import (
    BatchResultResponse,
    CascadeDeleteResponse,
    ErrorResponse,
    HealthResponse,
    ListResponse,
    MigrateResponse,
    RestoreResponse,
)

APP_VERSION = "0.1.0"

router = APIRouter()


def get_adapter(request: Request) -> StorageAdapter:
    """起動時に組み立てたアダプターを取り出す"""
    return request.app.state.adapter


def get_config() -> StorageConfig:
    return StorageConfig()


async def _to_http_response(resp: StorageResponse) -> Response:
    if resp.status == 204:
        return Response(status_code=204)
    return Response(content=await resp.text(), status_code=resp.status, media_type="application/json")


async def _forward(request: Request, adapter: StorageAdapter, path: str) -> Response:
    """HTTP リクエストをそのままアダプターの fetch に渡す"""
    if request.url.query:
        path = f"{path}?{request.url.query}"
    body = await request.body()
    resp = await adapter.fetch(path, method=request.method, body=body or None)
    return await _to_http_response(resp)


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


async def _read_csv_body(request: Request) -> str:
    raw = await request.body()
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise BadRequestError("CSVファイルは UTF-8 で保存してください")


@router.get("/")
async def root():
    """ルートエンドポイント"""
    return {"message": "ココカラナビ API"}


@router.get("/health", response_model=HealthResponse)
async def health_check(adapter: StorageAdapter = Depends(get_adapter)):
    """ヘルスチェックエンドポイント（ストレージへの接続確認を含む）"""
    storage_ok = await adapter.store.ping()
    return HealthResponse(
        status="healthy" if storage_ok else "degraded",
        version=APP_VERSION,
        backend=adapter.store.name,
        storage="ok" if storage_ok else "unavailable",
    )


@router.api_route(
    "/tables/{table_name}",
    methods=["GET", "POST"],
    responses={200: {"model": ListResponse}, 400: {"model": ErrorResponse}},
)
async def table_collection(
    table_name: str,
    request: Request,
    adapter: StorageAdapter = Depends(get_adapter),
):
    """
    一覧取得（GET）とレコード作成（POST）

    GET は limit / page / search / sort のクエリパラメータに対応します。
    """
    return await _forward(request, adapter, f"tables/{quote(table_name, safe='')}")


@router.api_route(
    "/tables/{table_name}/{record_id}",
    methods=["GET", "PUT", "PATCH", "DELETE"],
    responses={404: {"model": ErrorResponse}, 400: {"model": ErrorResponse}},
)
async def table_record(
    table_name: str,
    record_id: str,
    request: Request,
    adapter: StorageAdapter = Depends(get_adapter),
):
    """
    1件の取得（GET）、全体更新（PUT）、部分更新（PATCH）、削除（DELETE）
    """
    path = f"tables/{quote(table_name, safe='')}/{quote(record_id, safe='')}"
    return await _forward(request, adapter, path)


@router.post("/import/{table_name}", response_model=BatchResultResponse)
async def import_records(
    table_name: str,
    records: List[Any] = Body(..., description="登録するレコードの配列"),
    chunk_size: Optional[int] = Query(None, ge=1, description="1回のコミットで書き込む件数"),
    adapter: StorageAdapter = Depends(get_adapter),
):
    """JSON 配列で一括登録"""
    result = await adapter.batch_create(table_name, records, chunk_size)
    return BatchResultResponse(**result.to_dict())


@router.post("/import/students/csv", response_model=BatchResultResponse)
async def import_students_csv(
    request: Request,
    chunk_size: Optional[int] = Query(None, ge=1),
    adapter: StorageAdapter = Depends(get_adapter),
):
    """児童名簿CSV（学籍番号,氏名,学年,クラス）の一括登録"""
    csv_text = await _read_csv_body(request)
    result = await CsvService(adapter).import_students(csv_text, chunk_size)
    return BatchResultResponse(**result.to_dict())


@router.post("/import/teachers/csv", response_model=BatchResultResponse)
async def import_teachers_csv(
    request: Request,
    chunk_size: Optional[int] = Query(None, ge=1),
    adapter: StorageAdapter = Depends(get_adapter),
):
    """教員名簿CSVの一括登録"""
    csv_text = await _read_csv_body(request)
    result = await CsvService(adapter).import_teachers(csv_text, chunk_size)
    return BatchResultResponse(**result.to_dict())


@router.get("/export/students/csv")
async def export_students_csv(adapter: StorageAdapter = Depends(get_adapter)):
    """在籍中の児童名簿をCSV（BOM付きUTF-8）で書き出す"""
    content = await CsvService(adapter).export_students()
    return _csv_response(content, f"児童名簿_{datetime.now().strftime('%Y%m%d')}.csv")


@router.get("/export/teachers/csv")
async def export_teachers_csv(adapter: StorageAdapter = Depends(get_adapter)):
    """教員名簿をCSV（BOM付きUTF-8）で書き出す"""
    content = await CsvService(adapter).export_teachers()
    return _csv_response(content, f"教員名簿_{datetime.now().strftime('%Y-%m-%d')}.csv")


@router.get("/export/consultations/csv")
async def export_consultations_csv(adapter: StorageAdapter = Depends(get_adapter)):
    """相談と健康記録を結合したレポートをCSVで書き出す（スプレッドシート取り込み用）"""
    content = await CsvService(adapter).export_consultations()
    return _csv_response(content, "health_consultations_report.csv")


@router.get("/export")
async def export_snapshot(adapter: StorageAdapter = Depends(get_adapter)):
    """全テーブルのJSONスナップショット"""
    return await BackupService(adapter.store, adapter.tables).export_snapshot()


@router.post("/restore", response_model=RestoreResponse)
async def restore_snapshot(
    snapshot: Dict[str, Any] = Body(..., description="/export で取得したスナップショット"),
    adapter: StorageAdapter = Depends(get_adapter),
):
    """スナップショットに含まれるテーブルを丸ごと置き換える"""
    restored = await BackupService(adapter.store, adapter.tables).restore_snapshot(snapshot)
    return RestoreResponse(success=True, restored=restored)


@router.post("/migrate", response_model=MigrateResponse)
async def migrate_local_data(
    chunk_size: Optional[int] = Query(None, ge=1),
    adapter: StorageAdapter = Depends(get_adapter),
    config: StorageConfig = Depends(get_config),
):
    """
    LOCAL_STORAGE_DIR に保存されたローカルデータを、使用中のストレージへ一括登録する

    ローカル版から Firestore / Supabase へ切り替えるときに使う。
    """
    if not config.local_storage_dir:
        raise BadRequestError("LOCAL_STORAGE_DIR環境変数が設定されていません")
    source = LocalStore(FileKeyValueStorage(config.local_storage_dir), seed_defaults=False)
    result = await BackupService(source, adapter.tables).migrate(
        adapter.store, chunk_size or config.batch_chunk_size
    )
    return MigrateResponse(**result)


@router.delete("/students/{student_id}/cascade", response_model=CascadeDeleteResponse)
async def delete_student_cascade(
    student_id: str,
    adapter: StorageAdapter = Depends(get_adapter),
):
    """児童と、その児童の健康記録・相談記録をまとめて削除する"""
    return await StudentService(adapter).delete_student(student_id)
