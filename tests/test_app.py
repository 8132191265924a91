import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

from remotelists.app import create_app
from remotelists.core.client import ClientProvider, HostContext
from remotelists.services.schema import load_schemas

from .fakes import FakeStore, fake_factory


@pytest.fixture
def schemas(tmp_path):
    path = tmp_path / "collections.json"
    path.write_text(
        '{"collections": [{"name": "tasks", "fields": ['
        '{"name": "title", "required": true}, {"name": "status"}]}]}'
    )
    return load_schemas(path)


@pytest.fixture
def api_store():
    store = FakeStore()
    store.seed("tasks", [
        {"title": "one", "status": "open"},
        {"title": "two", "status": "open"},
        {"title": "three", "status": "done"},
    ])
    return store


@pytest.fixture
def client(schemas, api_store):
    provider = ClientProvider(client_factory=fake_factory(api_store))
    app = create_app(schemas, provider, HostContext(url="https://example.supabase.co", key="k"))
    with TestClient(app) as test_client:
        yield test_client


def test_list_items_with_filter_and_paging(client):
    response = client.get("/collections/tasks/items", params={
        "fields": "title", "filter": "status eq 'open'", "page_size": 1,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["items"] == [{"id": 1, "title": "one"}]
    assert body["has_more"] is True
    assert body["next_offset"] == 1


def test_get_create_update_delete(client):
    created = client.post("/collections/tasks/items", json={"title": "four", "status": "open"})
    assert created.status_code == 201
    item_id = created.json()["id"]

    patched = client.patch(f"/collections/tasks/items/{item_id}", json={"status": "done"})
    assert patched.status_code == 204

    fetched = client.get(f"/collections/tasks/items/{item_id}")
    assert fetched.json() == {"id": item_id, "title": "four", "status": "done"}

    assert client.delete(f"/collections/tasks/items/{item_id}").status_code == 204
    assert client.get(f"/collections/tasks/items/{item_id}").status_code == 404


def test_errors_map_to_status_codes(client, api_store):
    assert client.get("/collections/nope/items").status_code == 404
    assert client.get("/collections/tasks/items", params={"fields": "colour"}).status_code == 400
    assert client.post("/collections/tasks/items", json={"status": "open"}).status_code == 400
    assert client.get("/collections/tasks/items/bad id").status_code == 400

    api_store.fail_next(APIError({"message": "JWT expired", "code": "PGRST301", "details": None, "hint": None}))
    response = client.get("/collections/tasks/items")
    assert response.status_code == 502
    assert "JWT" not in response.json()["detail"]


def test_batch_endpoint_reports_per_operation(client):
    response = client.post("/collections/tasks/batch", json={"operations": [
        {"op": "create", "values": {"title": "five"}},
        {"op": "update", "id": {"ref": 0}, "values": {"status": "open"}},
        {"op": "delete", "id": 9999},
        {"op": "update", "id": 9999, "values": {"status": "open"}},
    ]})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert [o["ok"] for o in body["outcomes"]] == [True, True, True, False]
    assert body["outcomes"][1]["value"]["status"] == "open"
    assert body["outcomes"][3]["error"]["error_code"] == "NOT_FOUND"


def test_health_and_root(client):
    health = client.get("/health").json()
    assert health["status"] == "healthy"

    root = client.get("/").json()
    assert root["collections"] == ["tasks"]
