import uuid

from fastapi.testclient import TestClient

from thesis_api.main import app

client = TestClient(app)


def new_project(headers, career_id, name="X", **extra):
    payload = {"name": name, "description": "Sistema de tesis", "career_id": str(career_id), **extra}
    r = client.post("/api/projects", json=payload, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def new_skill(headers, name):
    r = client.post("/api/skills", json={"name": name}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["id"]


def listed_names(headers=None):
    r = client.get("/api/projects", params={"limit": 1000}, headers=headers or {})
    assert r.status_code == 200
    return {p["name"] for p in r.json()["data"]}


def test_registration_and_visibility_scenario(seed, make_user):
    r = client.post("/api/auth/register", json={"email": "a@gmail.com", "password": "P@ssw0rd1", "name": "A"})
    assert r.status_code == 201
    assert r.json()["user"]["role"]["name"] == "USER"
    a_id = r.json()["user"]["id"]
    a_headers = {"Authorization": f"Bearer {r.json()['token']}"}

    project = new_project(a_headers, seed["career_id"], status="aprobado", created_by_id=str(uuid.uuid4()))
    assert project["status"] == "pendiente"
    assert project["created_by_id"] == a_id
    assert project["creator"]["id"] == a_id

    detail = client.get(f"/api/projects/{project['id']}", headers=a_headers).json()
    assert [p["id"] for p in detail["participants"]] == [a_id]

    _, b_headers = make_user("USER")
    _, admin_headers = make_user("ADMIN")
    assert "X" not in listed_names(b_headers)
    assert "X" in listed_names(a_headers)
    assert "X" in listed_names(admin_headers)
    assert "X" in listed_names()


def test_pending_project_hidden_from_other_users_by_id(seed, make_user):
    _, a_headers = make_user("USER")
    _, b_headers = make_user("TEACHER")
    project = new_project(a_headers, seed["career_id"])
    assert client.get(f"/api/projects/{project['id']}", headers=b_headers).status_code == 404
    assert client.get(f"/api/projects/{project['id']}", headers=a_headers).status_code == 200


def test_approved_project_visible_to_everyone(seed, make_user):
    _, a_headers = make_user("USER")
    _, b_headers = make_user("USER")
    _, admin_headers = make_user("ADMIN")
    project = new_project(a_headers, seed["career_id"])
    r = client.patch(f"/api/projects/{project['id']}", json={"status": "aprobado"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "aprobado"
    assert "X" in listed_names(b_headers)


def test_invalid_token_on_public_listing_is_rejected():
    r = client.get("/api/projects", headers={"Authorization": "Bearer broken"})
    assert r.status_code == 401


def test_skill_sync_replaces_whole_set(seed, make_user):
    _, a_headers = make_user("USER")
    project = new_project(a_headers, seed["career_id"])
    s1 = new_skill(a_headers, "Python")
    s2 = new_skill(a_headers, "FastAPI")

    r = client.patch(f"/api/projects/{project['id']}", json={"skills": [s1, s2, s2]}, headers=a_headers)
    assert r.status_code == 200
    skills = client.get(f"/api/skills/project/{project['id']}").json()
    assert {s["id"] for s in skills} == {s1, s2}

    r = client.patch(f"/api/projects/{project['id']}", json={"skills": [s2]}, headers=a_headers)
    assert r.status_code == 200
    detail = client.get(f"/api/projects/{project['id']}", headers=a_headers).json()
    assert [s["id"] for s in detail["skills"]] == [s2]

    r = client.patch(f"/api/projects/{project['id']}", json={"skills": []}, headers=a_headers)
    assert r.status_code == 200
    assert client.get(f"/api/skills/project/{project['id']}").json() == []


def test_skill_sync_with_unknown_skill_changes_nothing(seed, make_user):
    _, a_headers = make_user("USER")
    project = new_project(a_headers, seed["career_id"])
    s1 = new_skill(a_headers, "Python")
    client.patch(f"/api/projects/{project['id']}", json={"skills": [s1]}, headers=a_headers)

    r = client.patch(
        f"/api/projects/{project['id']}",
        json={"name": "Renamed", "skills": [str(uuid.uuid4())]},
        headers=a_headers,
    )
    assert r.status_code == 400
    assert r.json()["error"] == "bad_reference"
    detail = client.get(f"/api/projects/{project['id']}", headers=a_headers).json()
    assert detail["name"] == "X"
    assert [s["id"] for s in detail["skills"]] == [s1]


def test_non_owner_cannot_update_or_delete(seed, make_user):
    _, a_headers = make_user("USER")
    _, b_headers = make_user("TEACHER")
    _, admin_headers = make_user("ADMIN")
    project = new_project(a_headers, seed["career_id"])
    client.patch(f"/api/projects/{project['id']}", json={"status": "aprobado"}, headers=admin_headers)
    r = client.patch(f"/api/projects/{project['id']}", json={"name": "Hijacked"}, headers=b_headers)
    assert r.status_code == 403
    assert client.delete(f"/api/projects/{project['id']}", headers=b_headers).status_code == 403
    detail = client.get(f"/api/projects/{project['id']}", headers=a_headers).json()
    assert detail["name"] == "X"


def test_hidden_pending_project_cannot_be_updated_or_deleted_by_others(seed, make_user):
    _, a_headers = make_user("USER")
    _, b_headers = make_user("TEACHER")
    project = new_project(a_headers, seed["career_id"])
    url = f"/api/projects/{project['id']}"
    assert client.patch(url, json={"name": "Hijacked"}, headers=b_headers).status_code == 404
    r = client.delete(url, headers=b_headers)
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"
    assert client.get(url, headers=a_headers).json()["name"] == "X"


def test_pending_project_links_hidden_from_other_users(seed, make_user):
    a_id, a_headers = make_user("USER")
    _, b_headers = make_user("USER")
    _, admin_headers = make_user("ADMIN")
    project = new_project(a_headers, seed["career_id"])
    skill = new_skill(a_headers, "Py")
    r = client.post("/api/project-skills", json={"project_id": project["id"], "skill_id": skill}, headers=a_headers)
    assert r.status_code == 201

    assert client.get(f"/api/skills/project/{project['id']}", headers=b_headers).status_code == 404
    own = client.get(f"/api/skills/project/{project['id']}", headers=a_headers)
    assert [s["name"] for s in own.json()] == ["Py"]

    def linked_projects(path, headers):
        r = client.get(path, params={"limit": 1000}, headers=headers)
        assert r.status_code == 200
        return [link["project_id"] for link in r.json()["data"]]

    for path in ("/api/project-skills", "/api/user-projects"):
        assert project["id"] not in linked_projects(path, b_headers)
        assert project["id"] in linked_projects(path, a_headers)
        assert project["id"] in linked_projects(path, admin_headers)

    client.patch(f"/api/projects/{project['id']}", json={"status": "aprobado"}, headers=admin_headers)
    assert project["id"] in linked_projects("/api/user-projects", b_headers)
    assert client.get(f"/api/skills/project/{project['id']}", headers=b_headers).status_code == 200
    assert str(a_id) in [link["user_id"] for link in client.get("/api/user-projects", headers=b_headers).json()["data"]]


def test_admin_can_update_any_project(seed, make_user):
    _, a_headers = make_user("USER")
    _, admin_headers = make_user("ADMIN")
    project = new_project(a_headers, seed["career_id"])
    r = client.patch(f"/api/projects/{project['id']}", json={"summary": "Resumen"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["summary"] == "Resumen"


def test_update_requires_authentication(seed, make_user):
    _, a_headers = make_user("USER")
    project = new_project(a_headers, seed["career_id"])
    assert client.patch(f"/api/projects/{project['id']}", json={"name": "Y"}).status_code == 401


def test_status_transitions_for_owner(seed, make_user):
    _, a_headers = make_user("USER")
    _, admin_headers = make_user("ADMIN")
    project = new_project(a_headers, seed["career_id"])
    url = f"/api/projects/{project['id']}"

    assert client.patch(url, json={"status": "aprobado"}, headers=a_headers).status_code == 403
    assert client.patch(url, json={"status": "aprobado"}, headers=admin_headers).status_code == 200
    r = client.patch(url, json={"status": "completado"}, headers=a_headers)
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_input"
    assert client.patch(url, json={"status": "en progreso"}, headers=a_headers).json()["status"] == "en progreso"
    assert client.patch(url, json={"status": "completado"}, headers=a_headers).json()["status"] == "completado"


def test_unknown_status_is_rejected(seed, make_user):
    _, admin_headers = make_user("ADMIN")
    project = new_project(admin_headers, seed["career_id"])
    r = client.patch(f"/api/projects/{project['id']}", json={"status": "archivado"}, headers=admin_headers)
    assert r.status_code == 400


def test_project_dates_are_validated(seed, make_user):
    _, a_headers = make_user("USER")
    payload = {
        "name": "Dates",
        "description": "d",
        "career_id": str(seed["career_id"]),
        "start_date": "1999-01-01",
    }
    assert client.post("/api/projects", json=payload, headers=a_headers).status_code == 422


def test_create_with_unknown_career_is_bad_reference(make_user):
    _, a_headers = make_user("USER")
    r = client.post(
        "/api/projects",
        json={"name": "X", "description": "d", "career_id": str(uuid.uuid4())},
        headers=a_headers,
    )
    assert r.status_code == 400
    assert r.json()["error"] == "bad_reference"


def test_delete_cascades_links(seed, make_user):
    _, a_headers = make_user("USER")
    project = new_project(a_headers, seed["career_id"])
    s1 = new_skill(a_headers, "Python")
    client.patch(f"/api/projects/{project['id']}", json={"skills": [s1]}, headers=a_headers)

    r = client.delete(f"/api/projects/{project['id']}", headers=a_headers)
    assert r.status_code == 200
    assert r.json()["id"] == project["id"]
    assert client.get(f"/api/projects/{project['id']}", headers=a_headers).status_code == 404
    links = client.get("/api/project-skills").json()
    assert links["meta"]["total"] == 0
    assert client.get("/api/user-projects").json()["meta"]["total"] == 0
    assert client.get(f"/api/skills/{s1}").status_code == 200


def test_projects_by_skill_respects_visibility(seed, make_user):
    _, a_headers = make_user("USER")
    _, b_headers = make_user("USER")
    project = new_project(a_headers, seed["career_id"])
    s1 = new_skill(a_headers, "Python")
    client.patch(f"/api/projects/{project['id']}", json={"skills": [s1]}, headers=a_headers)
    assert [p["id"] for p in client.get(f"/api/projects/skill/{s1}", headers=a_headers).json()] == [project["id"]]
    assert client.get(f"/api/projects/skill/{s1}", headers=b_headers).json() == []
    assert client.get(f"/api/projects/skill/{uuid.uuid4()}").status_code == 404


def test_get_missing_project_is_not_found():
    r = client.get(f"/api/projects/{uuid.uuid4()}")
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"
