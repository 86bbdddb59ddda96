import uuid

from fastapi.testclient import TestClient

from thesis_api.main import app

client = TestClient(app)


def test_period_name_is_unique(make_user):
    _, headers = make_user("USER")
    assert client.post("/api/period", json={"name": "2025-1"}, headers=headers).status_code == 201
    r = client.post("/api/period", json={"name": " 2025-1 "}, headers=headers)
    assert r.status_code == 409
    assert r.json()["error"] == "conflict"


def test_period_requires_auth_to_create():
    assert client.post("/api/period", json={"name": "2025-1"}).status_code == 401


def test_periods_are_ordered_by_name(make_user):
    _, headers = make_user("USER")
    for name in ("2024-2", "2025-1", "2024-1"):
        client.post("/api/period", json={"name": name}, headers=headers)
    desc = [p["name"] for p in client.get("/api/period").json()["data"]]
    asc = [p["name"] for p in client.get("/api/period", params={"order": "asc"}).json()["data"]]
    assert desc == ["2025-1", "2024-2", "2024-1"]
    assert asc == list(reversed(desc))


def test_period_get_and_delete(make_user):
    _, headers = make_user("USER")
    period_id = client.post("/api/period", json={"name": "2025-2"}, headers=headers).json()["id"]
    assert client.get(f"/api/period/{period_id}").json()["name"] == "2025-2"
    assert client.delete(f"/api/period/{period_id}", headers=headers).status_code == 200
    assert client.get(f"/api/period/{period_id}").status_code == 404


def test_career_crud(make_user):
    _, headers = make_user("USER")
    created = client.post("/api/careers", json={"name": "Electrónica"}, headers=headers)
    assert created.status_code == 201
    career_id = created.json()["id"]
    r = client.patch(f"/api/careers/{career_id}", json={"name": "Electricidad"}, headers=headers)
    assert r.json()["name"] == "Electricidad"
    assert client.get("/api/careers").json()["meta"]["total"] == 2
    assert client.delete(f"/api/careers/{career_id}", headers=headers).status_code == 200
    assert client.get(f"/api/careers/{career_id}").status_code == 404


def test_referenced_career_cannot_be_deleted(seed, make_user):
    _, headers = make_user("USER")
    r = client.delete(f"/api/careers/{seed['career_id']}", headers=headers)
    assert r.status_code == 409


def test_roles_are_admin_only(make_user):
    _, user = make_user("USER")
    _, admin = make_user("ADMIN")
    assert client.get("/api/roles", headers=user).status_code == 403
    assert client.post("/api/roles", json={"name": "GUEST"}, headers=user).status_code == 403
    r = client.post("/api/roles", json={"name": "GUEST"}, headers=admin)
    assert r.status_code == 201
    assert client.post("/api/roles", json={"name": "GUEST"}, headers=admin).status_code == 409
    assert client.get("/api/roles", headers=admin).json()["meta"]["total"] == 4


def test_role_in_use_cannot_be_deleted(seed, make_user):
    _, admin = make_user("ADMIN")
    r = client.delete(f"/api/roles/{seed['roles']['TEACHER']}", headers=admin)
    assert r.status_code == 409


def test_role_permission_grants(seed, make_user):
    _, admin = make_user("ADMIN")
    perm = client.post("/api/permissions", json={"name": "approve_projects"}, headers=admin)
    assert perm.status_code == 201
    grant = {"role_id": str(seed["roles"]["TEACHER"]), "permission_id": perm.json()["id"]}
    created = client.post("/api/role-permissions", json=grant, headers=admin)
    assert created.status_code == 201
    assert client.post("/api/role-permissions", json=grant, headers=admin).status_code == 409
    bad = {"role_id": str(uuid.uuid4()), "permission_id": perm.json()["id"]}
    assert client.post("/api/role-permissions", json=bad, headers=admin).status_code == 400
    assert client.delete(f"/api/role-permissions/{created.json()['id']}", headers=admin).status_code == 200


def test_me_lists_permissions_of_role(make_user):
    _, teacher = make_user("TEACHER")
    r = client.get("/api/auth/me", headers=teacher)
    assert r.json()["permissions"] == ["read_projects", "write_projects"]
