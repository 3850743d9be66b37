"""FastAPI アプリケーションのメインエントリーポイント"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cocokaranavi.domain.errors import StorageError, UnsupportedMethodError, UnsupportedPathError
from cocokaranavi.infrastructure.config import StorageConfig
from cocokaranavi.infrastructure.logging_config import setup_logging
from cocokaranavi.infrastructure.store_factory import build_store
from cocokaranavi.router import APP_VERSION, router
from cocokaranavi.services.gateways.store import Store
from cocokaranavi.services.storage_adapter import StorageAdapter

# 環境変数を読み込み
load_dotenv()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """起動時にストアを一度だけ生成し、終了時に閉じる"""
    if getattr(app.state, "adapter", None) is not None:
        # 外部から注入されたストアは呼び出し側が管理する
        yield
        return

    config = StorageConfig()
    setup_logging(config.debug, config.backend)
    store = build_store(config)
    app.state.adapter = StorageAdapter(
        store,
        default_limit=config.default_page_limit,
        chunk_size=config.batch_chunk_size,
    )
    try:
        yield
    finally:
        await store.aclose()
        logger.info("ストレージを閉じました: %s", store.name)


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


async def unsupported_request_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "bad request", "message": str(exc)})


def create_app(store: Optional[Store] = None, **adapter_options) -> FastAPI:
    """
    Args:
        store: 使用するストア。省略時は起動時に環境変数から組み立てる
        adapter_options: StorageAdapter に渡す追加オプション
    """
    app = FastAPI(
        title="ココカラナビ API",
        version=APP_VERSION,
        description="児童の健康観察・相談データのストレージAPI",
        lifespan=lifespan,
    )
    if store is not None:
        app.state.adapter = StorageAdapter(store, **adapter_options)

    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(UnsupportedPathError, unsupported_request_handler)
    app.add_exception_handler(UnsupportedMethodError, unsupported_request_handler)

    # ルーターを登録
    app.include_router(router)
    return app


app = create_app()
