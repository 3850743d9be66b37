"""SupabaseStore のテスト（httpx.MockTransport で PostgREST を模擬）"""

import json
from datetime import datetime
from typing import Any, Dict, List

import httpx
import pytest

from cocokaranavi.domain.errors import BackendUnavailableError, NotFoundError
from cocokaranavi.infrastructure.supabase_store import SupabaseStore
from cocokaranavi.services.storage_adapter import StorageAdapter

BASE_URL = "https://example.supabase.co"


class FakePostgrest:
    """/rest/v1/<table> を辞書で再現する最小限の PostgREST"""

    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.requests: List[httpx.Request] = []
        self.fail_posts = False

    def _rows(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self.tables.setdefault(table, {})

    @staticmethod
    def _id_filter(request: httpx.Request):
        value = request.url.params.get("id", "")
        return value[3:] if value.startswith("eq.") else None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.headers["apikey"] == "service-key"
        assert request.headers["Authorization"] == "Bearer service-key"
        table = request.url.path.rsplit("/", 1)[-1]
        rows = self._rows(table)
        record_id = self._id_filter(request)

        if request.method == "GET":
            if record_id is not None:
                found = [rows[record_id]] if record_id in rows else []
            else:
                found = sorted(rows.values(), key=lambda r: r.get("created_at") or "")
            return httpx.Response(200, json=found)

        if request.method == "POST":
            if self.fail_posts:
                return httpx.Response(409, json={"message": "duplicate key"})
            payload = json.loads(request.content)
            items = payload if isinstance(payload, list) else [payload]
            for item in items:
                rows[item["id"]] = item
            return httpx.Response(201, json=items)

        if request.method == "PATCH":
            if record_id not in rows:
                return httpx.Response(200, json=[])
            rows[record_id] = {**rows[record_id], **json.loads(request.content)}
            return httpx.Response(200, json=[rows[record_id]])

        if request.method == "DELETE":
            if record_id is not None:
                rows.pop(record_id, None)
            elif request.url.params.get("id") == "not.is.null":
                rows.clear()
            return httpx.Response(204)

        return httpx.Response(405)


@pytest.fixture
def postgrest() -> FakePostgrest:
    return FakePostgrest()


@pytest.fixture
async def supabase_store(postgrest: FakePostgrest):
    client = httpx.AsyncClient(transport=httpx.MockTransport(postgrest))
    store = SupabaseStore(BASE_URL, "service-key", client=client)
    yield store
    await store.aclose()


async def test_create_generates_uuid_and_iso_timestamps(supabase_store, postgrest) -> None:
    created = await supabase_store.create("students", {"name": "Yamada"})
    assert len(created["id"]) == 36
    assert "T" in created["created_at"]
    assert created["created_at"] == created["updated_at"]

    request = postgrest.requests[-1]
    assert request.url.path == "/rest/v1/students"
    assert request.url.params["on_conflict"] == "id"
    assert "resolution=merge-duplicates" in request.headers["Prefer"]


async def test_get_and_not_found(supabase_store) -> None:
    created = await supabase_store.create("teachers", {"id": "t1", "name": "田中先生"})
    assert await supabase_store.get("teachers", "t1") == created
    with pytest.raises(NotFoundError):
        await supabase_store.get("teachers", "missing")


async def test_replace_nulls_missing_columns(supabase_store) -> None:
    created = await supabase_store.create("students", {"id": "s1", "name": "a", "class": "A"})
    replaced = await supabase_store.replace("students", "s1", {"name": "b"})
    assert replaced["name"] == "b"
    assert replaced["class"] is None
    assert replaced["created_at"] == created["created_at"]


async def test_merge_keeps_other_fields(supabase_store) -> None:
    await supabase_store.create("consultations", {"id": "c1", "status": "新規", "student_id": "s1"})
    merged = await supabase_store.merge("consultations", "c1", {"status": "確認済み"})
    assert merged["status"] == "確認済み"
    assert merged["student_id"] == "s1"


async def test_hard_delete_by_default(supabase_store, postgrest) -> None:
    await supabase_store.create("students", {"id": "s1"})
    await supabase_store.delete("students", "s1")
    assert postgrest.tables["students"] == {}
    with pytest.raises(NotFoundError):
        await supabase_store.delete("students", "s1")


async def test_soft_delete(postgrest) -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(postgrest))
    store = SupabaseStore(BASE_URL, "service-key", soft_delete=True, client=client)
    await store.create("students", {"id": "s1"})
    await store.delete("students", "s1")
    assert postgrest.tables["students"]["s1"]["deleted"] is True
    await store.aclose()


async def test_batch_create_posts_one_request_per_chunk(supabase_store, postgrest) -> None:
    records = [{"n": i} for i in range(5)]
    result = await supabase_store.batch_create("health_records", records, chunk_size=2)
    posts = [r for r in postgrest.requests if r.method == "POST"]
    assert len(posts) == 3
    assert result.success_count == 5
    assert len(postgrest.tables["health_records"]) == 5


async def test_batch_create_rejected_chunk_counts_all_records(supabase_store, postgrest) -> None:
    postgrest.fail_posts = True
    result = await supabase_store.batch_create("students", [{"n": 1}, {"n": 2}, "bad"])
    assert result.success_count == 0
    assert result.failed_count == 3
    assert result.total == 3


async def test_replace_table(supabase_store, postgrest) -> None:
    postgrest.tables["students"] = {"old": {"id": "old"}}
    await supabase_store.replace_table("students", [{"id": "s1"}, {"id": "s2"}])
    assert sorted(postgrest.tables["students"]) == ["s1", "s2"]


async def test_transport_error_becomes_backend_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    store = SupabaseStore(BASE_URL, "service-key", client=client)
    with pytest.raises(BackendUnavailableError):
        await store.list("students")
    assert await store.ping() is False
    await store.aclose()


async def test_ping(supabase_store) -> None:
    assert await supabase_store.ping() is True


async def test_unencodable_chunk_fails_without_losing_committed_chunks(supabase_store, postgrest) -> None:
    records = [{"n": 1}, {"n": 2}, {"n": 3, "when": datetime(2024, 5, 1)}]
    result = await supabase_store.batch_create("students", records, chunk_size=2)
    assert result.success_count == 2
    assert result.failed_count == 1
    assert result.errors[0]["batch"] == "2-3"
    assert len(postgrest.tables["students"]) == 2


async def test_adapter_counts_match_committed_rows(supabase_store, postgrest) -> None:
    records = [{"n": 1}, {"n": 2}, {"n": 3, "when": datetime(2024, 5, 1)}]
    result = await StorageAdapter(supabase_store).batch_create("students", records, chunk_size=2)
    assert result.success_count == 2
    assert result.failed_count == 1
    assert result.success_count == len(postgrest.tables["students"])
