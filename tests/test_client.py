import json
import httpx

from stora.core.client import StoraClient
from stora.core.sync import CachedEntry


def make_transport(calls, post_status=201, delete_status=404):
    snapshot = {
        "items": [
            {"id": 10, "name": "Tenda", "code": "T-1", "updated_at": "2025-01-03T00:00:00Z"},
            {"id": 3, "name": "Proyektor", "code": "P-1", "updated_at": "2025-01-02T00:00:00Z"},
        ],
        "loans": [],
        "as_of": "2025-01-03T00:00:01Z",
    }

    def handler(request: httpx.Request):
        calls.append(request)
        path = request.url.path
        if request.method == "POST" and path == "/v1/api/items":
            if post_status != 201:
                return httpx.Response(post_status, json={"error": "storage_failure"})
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": 10, "updated_at": "2025-01-03T00:00:00Z", **body})
        if request.method == "DELETE" and path == "/v1/api/items/5":
            return httpx.Response(delete_status, json={"error": "not_found"})
        if request.method == "GET" and path == "/v1/api/sync/snapshot":
            return httpx.Response(200, json=snapshot)
        return httpx.Response(500)

    return httpx.MockTransport(handler)


def cache():
    return [
        CachedEntry("a", None, {"name": "Tenda", "code": "T-1", "quantity": 2, "local_only": True},
                    "2025-01-02T12:00:00Z", needs_sync=True),
        CachedEntry("d", 5, {"name": "Lama"}, "2025-01-01T00:00:00Z", needs_sync=True, deleted=True),
        CachedEntry("c", 3, {"name": "Proyektor (old)"}, "2025-01-01T00:00:00Z"),
    ]


def test_sync_pushes_then_pulls():
    calls = []
    client = StoraClient("http://stora.test/", token="secret", transport=make_transport(calls))

    merged, plan = client.sync(cache())

    assert [(r.method, r.url.path) for r in calls] == [
        ("POST", "/v1/api/items"),
        ("DELETE", "/v1/api/items/5"),
        ("GET", "/v1/api/sync/snapshot"),
    ]
    assert calls[0].headers["Authorization"] == "Bearer secret"
    assert calls[0].headers["User-Agent"] == "StoraSyncClient/1.0"
    assert "local_only" not in json.loads(calls[0].content)

    by_local = {entry.local_id: entry for entry in merged}
    assert set(by_local) == {"a", "c"}
    assert by_local["a"].server_id == 10
    assert by_local["c"].data["name"] == "Proyektor"
    assert not any(entry.needs_sync for entry in merged)
    assert plan.pushes == []


def test_failed_push_stays_pending():
    calls = []
    client = StoraClient("http://stora.test", token="secret",
                         transport=make_transport(calls, post_status=500, delete_status=204))

    pushed, failed = client.push(cache())
    assert [e.local_id for e in pushed] == ["d"]
    assert [e.local_id for e in failed] == ["a"]
    assert failed[0].needs_sync
    client.close()
