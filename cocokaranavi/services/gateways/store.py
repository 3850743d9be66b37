from typing import Any, List, Optional, Protocol, Sequence

from cocokaranavi.domain.batch import BatchResult
from cocokaranavi.domain.records import Record


class Store(Protocol):
    """
    永続化先（ローカル / Firestore / Supabase）の共通インターフェース

    get / replace / merge / delete は対象が無ければ NotFoundError、
    バックエンド側の失敗は BackendUnavailableError を送出する。
    batch_create は例外を送出せず BatchResult に集計する。
    """

    name: str
    soft_delete: bool
    max_batch_size: int

    async def get(self, table_name: str, record_id: str) -> Record:
        ...

    async def list(self, table_name: str) -> List[Record]:
        ...

    async def create(self, table_name: str, record: Record) -> Record:
        ...

    async def replace(self, table_name: str, record_id: str, record: Record) -> Record:
        ...

    async def merge(self, table_name: str, record_id: str, patch: Record) -> Record:
        ...

    async def delete(self, table_name: str, record_id: str) -> None:
        ...

    async def batch_create(
        self,
        table_name: str,
        records: Sequence[Any],
        chunk_size: Optional[int] = None,
    ) -> BatchResult:
        ...

    async def replace_table(self, table_name: str, records: Sequence[Record]) -> None:
        ...

    async def ping(self) -> bool:
        ...

    async def aclose(self) -> None:
        ...
