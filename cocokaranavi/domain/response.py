"""fetch 互換のレスポンスエンベロープ"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict

STATUS_TEXTS: Dict[int, str] = {
    200: "OK",
    201: "Created",
    204: "No Content",
    400: "Bad Request",
    404: "Not Found",
    500: "Internal Server Error",
}


def status_text_for(status: int) -> str:
    return STATUS_TEXTS.get(status, "Unknown")


@dataclass
class StorageResponse:
    """
    どのバックエンドでも同じ形で返すレスポンス

    HTTP レスポンスと同じく ok / status / status_text と、
    本文を非同期に取り出す json() / text() を持つ。
    """
    status: int
    body: Any = None
    status_text: str = ""
    headers: Dict[str, str] = field(
        default_factory=lambda: {"content-type": "application/json"}
    )

    def __post_init__(self) -> None:
        if not self.status_text:
            self.status_text = status_text_for(self.status)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def json(self) -> Any:
        return self.body

    async def text(self) -> str:
        if self.body is None:
            return ""
        return json.dumps(self.body, ensure_ascii=False)

    @classmethod
    def success(cls, body: Any, status: int = 200) -> "StorageResponse":
        return cls(status=status, body=body)

    @classmethod
    def failure(cls, error: str, message: str, status: int = 500) -> "StorageResponse":
        return cls(status=status, body={"error": error, "message": message})
