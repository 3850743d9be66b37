"""ストレージ関連の設定"""

import os
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv

from cocokaranavi.utils.query import DEFAULT_PAGE_LIMIT

# プロジェクトルートの.envファイルを明示的に読み込み
project_root = Path(__file__).parent.parent.parent
env_path = project_root / ".env"
load_dotenv(env_path)

SUPPORTED_BACKENDS = ("local", "firestore", "supabase")

# バックエンドごとの既定の削除方式（True: 論理削除）
DEFAULT_SOFT_DELETE = {
    "local": False,
    "firestore": True,
    "supabase": False,
}


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name}環境変数は整数で指定してください。現在の値: {value}")


class StorageConfig:
    """ストレージ設定クラス"""

    def __init__(self):
        self.backend: str = os.getenv("STORAGE_BACKEND", "local").strip().lower()
        self.debug: bool = bool(_env_bool("DEBUG", False))

        # 一覧取得の既定件数・一括登録のチャンクサイズ
        self.default_page_limit: int = _env_int("DEFAULT_PAGE_LIMIT", DEFAULT_PAGE_LIMIT)
        self.batch_chunk_size: int = _env_int("BATCH_CHUNK_SIZE", 500)

        # 削除方式（未指定ならバックエンドの既定値）
        self._soft_delete: Optional[bool] = _env_bool("SOFT_DELETE")

        # ローカルストア
        self.local_storage_dir: Optional[str] = os.getenv("LOCAL_STORAGE_DIR") or None
        self.local_seed_defaults: bool = bool(_env_bool("LOCAL_SEED_DEFAULTS", True))

        # Firestore
        self.project_id: Optional[str] = os.getenv("GOOGLE_CLOUD_PROJECT")
        self.firestore_database: Optional[str] = os.getenv("FIRESTORE_DATABASE") or None

        # 認証情報のパスを絶対パスに変換
        credentials_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        if credentials_path and not os.path.isabs(credentials_path):
            # 相対パスの場合、プロジェクトルートからの絶対パスに変換
            self.credentials_path: Optional[str] = str(project_root / credentials_path)
        else:
            self.credentials_path = credentials_path

        # Supabase
        self.supabase_url: Optional[str] = os.getenv("SUPABASE_URL")
        self.supabase_key: Optional[str] = os.getenv("SUPABASE_KEY")

    @property
    def soft_delete(self) -> bool:
        if self._soft_delete is not None:
            return self._soft_delete
        return DEFAULT_SOFT_DELETE.get(self.backend, False)

    def validate(self) -> bool:
        """設定の妥当性をチェック"""
        if self.backend not in SUPPORTED_BACKENDS:
            raise ValueError(f"STORAGE_BACKEND環境変数が不正です。現在の値: {self.backend}")
        if self.default_page_limit < 1:
            raise ValueError(f"DEFAULT_PAGE_LIMITは1以上で指定してください。現在の値: {self.default_page_limit}")
        if self.batch_chunk_size < 1:
            raise ValueError(f"BATCH_CHUNK_SIZEは1以上で指定してください。現在の値: {self.batch_chunk_size}")
        if self.backend == "firestore":
            if not self.project_id:
                raise ValueError(f"GOOGLE_CLOUD_PROJECT環境変数が設定されていません。現在の値: {self.project_id}")
            if self.credentials_path and not os.path.exists(self.credentials_path):
                raise ValueError(f"認証情報ファイルが見つかりません: {self.credentials_path}")
        if self.backend == "supabase":
            if not self.supabase_url:
                raise ValueError(f"SUPABASE_URL環境変数が設定されていません。現在の値: {self.supabase_url}")
            if not self.supabase_key:
                raise ValueError("SUPABASE_KEY環境変数が設定されていません。")
        return True
