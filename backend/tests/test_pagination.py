from fastapi.testclient import TestClient

from thesis_api.main import app
from thesis_api.schemas import PageMeta, PaginationParams

client = TestClient(app)


def test_page_meta_math():
    meta = PageMeta.build(25, PaginationParams(page=2, limit=10))
    assert meta.total_pages == 3
    assert meta.has_next_page is True
    assert meta.has_previous_page is True
    last = PageMeta.build(25, PaginationParams(page=3, limit=10))
    assert last.has_next_page is False
    empty = PageMeta.build(0, PaginationParams())
    assert empty.total_pages == 0
    assert empty.has_next_page is False
    assert empty.has_previous_page is False


def test_list_envelope_and_defaults(seed, make_user):
    _, headers = make_user("ADMIN")
    for i in range(12):
        client.post("/api/projects", json={"name": f"P{i:02d}", "description": "d", "career_id": str(seed["career_id"])}, headers=headers)
    body = client.get("/api/projects").json()
    assert set(body) == {"data", "meta"}
    assert len(body["data"]) == 10
    assert body["meta"]["total"] == 12
    assert body["meta"]["pagination"] == {"page": 1, "limit": 10, "order": "desc"}
    assert body["meta"]["total_pages"] == 2
    # newest first by default
    assert body["data"][0]["name"] == "P11"


def test_second_page_and_ascending_order(seed, make_user):
    _, headers = make_user("ADMIN")
    for i in range(5):
        client.post("/api/projects", json={"name": f"P{i}", "description": "d", "career_id": str(seed["career_id"])}, headers=headers)
    body = client.get("/api/projects", params={"page": 2, "limit": 2, "order": "asc"}).json()
    assert [p["name"] for p in body["data"]] == ["P2", "P3"]
    assert body["meta"]["has_previous_page"] is True
    assert body["meta"]["has_next_page"] is True


def test_large_limit_returns_everything(seed, make_user):
    _, headers = make_user("ADMIN")
    for i in range(3):
        client.post("/api/projects", json={"name": f"P{i}", "description": "d", "career_id": str(seed["career_id"])}, headers=headers)
    body = client.get("/api/projects", params={"limit": 1000}).json()
    assert len(body["data"]) == 3
    assert body["meta"]["total_pages"] == 1


def test_invalid_pagination_is_rejected():
    assert client.get("/api/projects", params={"page": 0}).status_code == 422
    assert client.get("/api/projects", params={"limit": 0}).status_code == 422
    assert client.get("/api/projects", params={"order": "sideways"}).status_code == 422
