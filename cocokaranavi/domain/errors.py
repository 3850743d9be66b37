"""ストレージ操作のエラー定義"""

from typing import Dict, Optional


class StorageError(Exception):
    """ストレージ操作エラーの基底クラス"""
    status: int = 500
    error: str = "Error"

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error

    def to_dict(self) -> Dict[str, str]:
        """レスポンス本文の形式に変換"""
        return {"error": self.error, "message": self.message}


class NotFoundError(StorageError):
    """レコードが見つからない"""
    status = 404
    error = "not found"

    def __init__(self, table_name: str, record_id: str):
        super().__init__(f"{table_name}: ID: {record_id} のレコードが見つかりません")
        self.table_name = table_name
        self.record_id = record_id


class BadRequestError(StorageError):
    """不正なリクエスト（JSON 不正、ID 未指定など）"""
    status = 400
    error = "bad request"


class BackendUnavailableError(StorageError):
    """バックエンドの通信エラーや書き込み競合"""
    status = 500
    error = "backend unavailable"


class UnsupportedPathError(ValueError):
    """tables/<テーブル名> 形式でないパス。I/O 前に即座に送出する"""


class UnsupportedMethodError(ValueError):
    """サポートされていないメソッド。I/O 前に即座に送出する"""
