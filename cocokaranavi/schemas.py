"""API仕様とPydanticモデル定義"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """ヘルスチェックレスポンス"""
    status: str = Field(..., description="サービスの状態", examples=["healthy"])
    version: str = Field(..., description="APIのバージョン", examples=["0.1.0"])
    backend: str = Field(..., description="使用中のストレージ", examples=["local"])
    storage: str = Field(..., description="ストレージへの接続状態", examples=["ok"])


class ErrorResponse(BaseModel):
    """エラーレスポンス"""
    error: str = Field(..., description="エラー種別", examples=["not found"])
    message: str = Field(..., description="エラーメッセージ")


class ListResponse(BaseModel):
    """一覧取得レスポンス"""
    data: List[Dict[str, Any]] = Field(..., description="ページ内のレコード")
    total: int = Field(..., description="ページング前の件数")
    page: int = Field(..., description="ページ番号（1始まり）")
    limit: int = Field(..., description="1ページあたりの件数")


class BatchResultResponse(BaseModel):
    """一括登録の結果"""
    model_config = ConfigDict(populate_by_name=True)

    success_count: int = Field(..., alias="successCount", description="成功件数")
    failed_count: int = Field(..., alias="failedCount", description="失敗件数")
    errors: List[Dict[str, Any]] = Field(default_factory=list, description="失敗の詳細")


class RestoreResponse(BaseModel):
    """スナップショット復元の結果"""
    success: bool = Field(..., description="処理の成功/失敗")
    restored: Dict[str, int] = Field(default_factory=dict, description="テーブルごとの復元件数")


class MigrateResponse(BaseModel):
    """ローカルデータ移行の結果"""
    success: bool = Field(..., description="全テーブルの移行に成功したか")
    message: str = Field(..., description="結果メッセージ", examples=["合計4件のデータを移行しました"])
    details: Dict[str, int] = Field(default_factory=dict, description="テーブルごとの移行件数（失敗は -1）")


class CascadeDeleteResponse(BaseModel):
    """児童と関連レコードの削除結果"""
    success: bool = Field(..., description="処理の成功/失敗")
    deleted: Optional[str] = Field(None, description="削除した児童のID")
    health_records: int = Field(0, description="削除した健康記録の件数")
    consultations: int = Field(0, description="削除した相談記録の件数")
    failed: int = Field(0, description="削除に失敗した関連レコードの件数")
    error: Optional[str] = Field(None, description="エラーメッセージ（失敗時のみ）")
