"""Pytest の共通フィクスチャ

ストアはメモリ上の LocalStore を使い、HTTP テストは ASGI 経由で行う。
"""

import pytest
from httpx import ASGITransport, AsyncClient

from cocokaranavi.infrastructure.kv_storage import MemoryKeyValueStorage
from cocokaranavi.infrastructure.local_store import LocalStore
from cocokaranavi.main import create_app
from cocokaranavi.services.storage_adapter import StorageAdapter


@pytest.fixture
def store() -> LocalStore:
    """サンプルデータ無し・物理削除のメモリストア"""
    return LocalStore(MemoryKeyValueStorage(), seed_defaults=False)


@pytest.fixture
def soft_store() -> LocalStore:
    """論理削除のメモリストア"""
    return LocalStore(MemoryKeyValueStorage(), soft_delete=True, seed_defaults=False)


@pytest.fixture
def adapter(store: LocalStore) -> StorageAdapter:
    return StorageAdapter(store)


@pytest.fixture
async def client(store: LocalStore) -> AsyncClient:
    """FastAPI アプリに対する非同期 HTTP クライアント"""
    app = create_app(store)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
