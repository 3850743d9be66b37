import os
from mangum import Mangum
from cocokaranavi.main import app


def api_gateway_base_path() -> str:
    """API Gateway のステージ名 + 接頭辞（ENVIRONMENT / API_PATH_PREFIX から組み立て）"""
    stage = os.getenv("ENVIRONMENT", "dev")
    prefix = os.getenv("API_PATH_PREFIX", "cocokaranavi").strip("/")
    return f"/{stage}/{prefix}" if prefix else f"/{stage}"


# ストアは lifespan で生成するため、コールドスタートごとに lifespan を走らせる
lambda_handler = Mangum(app, api_gateway_base_path=api_gateway_base_path(), lifespan="auto")
