"""設定から Store を組み立てる"""

import logging

from cocokaranavi.infrastructure.config import StorageConfig
from cocokaranavi.infrastructure.kv_storage import FileKeyValueStorage, MemoryKeyValueStorage
from cocokaranavi.infrastructure.local_store import LocalStore
from cocokaranavi.services.gateways.store import Store

logger = logging.getLogger(__name__)


def build_store(config: StorageConfig) -> Store:
    """起動時に一度だけ呼び、生成した Store をアダプターに注入する"""
    config.validate()

    if config.backend == "firestore":
        # google-cloud-firestore は使うときだけ読み込む
        from cocokaranavi.infrastructure.firestore_store import (
            FirestoreStore,
            get_firestore_client,
        )
        client = get_firestore_client(config.project_id, config.firestore_database)
        store: Store = FirestoreStore(client, soft_delete=config.soft_delete)
    elif config.backend == "supabase":
        from cocokaranavi.infrastructure.supabase_store import SupabaseStore
        store = SupabaseStore(config.supabase_url, config.supabase_key, soft_delete=config.soft_delete)
    else:
        if config.local_storage_dir:
            storage = FileKeyValueStorage(config.local_storage_dir)
        else:
            storage = MemoryKeyValueStorage()
        store = LocalStore(storage, soft_delete=config.soft_delete,
                           seed_defaults=config.local_seed_defaults)

    logger.info("ストレージ初期化: backend=%s soft_delete=%s", store.name, store.soft_delete)
    return store
