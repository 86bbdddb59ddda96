from datetime import timedelta

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from thesis_api import main, models
from thesis_api.database import engine
from thesis_api.main import app

client = TestClient(app)


def register(email="a@gmail.com", password="P@ssw0rd1", name="Ana", **extra):
    return client.post("/api/auth/register", json={"email": email, "password": password, "name": name, **extra})


def test_register_assigns_default_role_and_returns_token(seed):
    r = register(role_id=str(seed["roles"]["ADMIN"]))
    assert r.status_code == 201
    body = r.json()
    assert body["user"]["email"] == "a@gmail.com"
    assert body["user"]["role"]["name"] == "USER"
    assert "password_hash" not in body["user"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == body["user"]["id"]
    assert me.json()["permissions"] == ["read_projects"]


def test_register_lowercases_email_and_rejects_duplicate():
    assert register(email="Ana@Gmail.com").status_code == 201
    r = register(email="ana@gmail.com")
    assert r.status_code == 409
    assert r.json()["error"] == "conflict"


def test_register_rejects_unknown_email_domain():
    r = register(email="someone@protonmail.ch")
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_input"


def test_register_accepts_institutional_suffix():
    assert register(email="student@uni.edu.ec").status_code == 201


def test_register_rejects_weak_password():
    r = register(password="password")
    assert r.status_code == 422


def test_register_without_default_role_is_a_configuration_error():
    with Session(engine) as session:
        role = session.exec(select(models.Role).where(models.Role.name == "USER")).one()
        for link in session.exec(select(models.RolePermission).where(models.RolePermission.role_id == role.id)).all():
            session.delete(link)
        # the links have no relationship to Role, so force them out first
        session.flush()
        session.delete(role)
        session.commit()
    r = register()
    assert r.status_code == 500
    assert r.json()["error"] == "configuration_error"


def test_login_returns_token_pair():
    register()
    r = client.post("/api/auth/login", json={"email": "A@gmail.com", "password": "P@ssw0rd1"})
    assert r.status_code == 200
    body = r.json()
    assert body["role"] == "USER"
    assert body["name"] == "Ana"
    assert body["access_token"] and body["refresh_token"]


def test_login_failures_are_indistinguishable():
    register()
    wrong = client.post("/api/auth/login", json={"email": "a@gmail.com", "password": "Wr0ng#pass"})
    unknown = client.post("/api/auth/login", json={"email": "nobody@gmail.com", "password": "P@ssw0rd1"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


def test_refresh_token_issues_new_pair():
    register()
    tokens = client.post("/api/auth/login", json={"email": "a@gmail.com", "password": "P@ssw0rd1"}).json()
    r = client.post("/api/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200
    assert r.json()["user_id"] == tokens["user_id"]


def test_refresh_token_rejects_garbage():
    r = client.post("/api/auth/refresh-token", json={"refresh_token": "not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["detail"] == "token expired or invalid"


def test_me_requires_valid_token():
    assert client.get("/api/auth/me").status_code == 401
    r = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.json()["error"] == "unauthorized"


def test_forgot_password_same_answer_for_unknown_email(mailer):
    register()
    known = client.post("/api/auth/forgot-password", json={"email": "a@gmail.com"})
    unknown = client.post("/api/auth/forgot-password", json={"email": "ghost@gmail.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert len(mailer.sent) == 1
    assert mailer.sent[0]["to"] == "a@gmail.com"
    assert "/reset-password/" in mailer.sent[0]["reset_url"]


def test_reset_token_is_single_use(mailer):
    register()
    client.post("/api/auth/forgot-password", json={"email": "a@gmail.com"})
    token = mailer.last_token
    first = client.post(f"/api/auth/reset-password/{token}", json={"password": "N3w#Password"})
    assert first.status_code == 200
    second = client.post(f"/api/auth/reset-password/{token}", json={"password": "An0ther#Pass"})
    assert second.status_code == 400
    login = client.post("/api/auth/login", json={"email": "a@gmail.com", "password": "N3w#Password"})
    assert login.status_code == 200


def test_expired_reset_token_is_rejected(mailer):
    register()
    client.post("/api/auth/forgot-password", json={"email": "a@gmail.com"})
    with Session(engine) as session:
        user = session.exec(select(models.User).where(models.User.email == "a@gmail.com")).one()
        user.reset_token_expiry = models.utcnow() - timedelta(minutes=1)
        session.add(user)
        session.commit()
    r = client.post(f"/api/auth/reset-password/{mailer.last_token}", json={"password": "N3w#Password"})
    assert r.status_code == 400


def test_forgot_password_delivery_failure_keeps_token(mailer):
    register()
    mailer.fail = True
    r = client.post("/api/auth/forgot-password", json={"email": "a@gmail.com"})
    assert r.status_code == 502
    assert r.json()["error"] == "delivery_failed"
    with Session(engine) as session:
        user = session.exec(select(models.User).where(models.User.email == "a@gmail.com")).one()
        assert user.reset_token is not None


def test_login_is_rate_limited(monkeypatch):
    monkeypatch.setattr(main._auth_rate_limiter, "max_requests", 2)
    payload = {"email": "nobody@gmail.com", "password": "P@ssw0rd1"}
    assert client.post("/api/auth/login", json=payload).status_code == 401
    assert client.post("/api/auth/login", json=payload).status_code == 401
    r = client.post("/api/auth/login", json=payload)
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1


def test_register_admin_requires_admin(make_user, seed):
    _, user_headers = make_user("USER")
    _, admin_headers = make_user("ADMIN")
    payload = {"email": "t@gmail.com", "password": "P@ssw0rd1", "name": "T", "role_id": str(seed["roles"]["TEACHER"])}
    assert client.post("/api/auth/register-admin", json=payload, headers=user_headers).status_code == 403
    r = client.post("/api/auth/register-admin", json=payload, headers=admin_headers)
    assert r.status_code == 201
    assert r.json()["role"]["name"] == "TEACHER"


def test_responses_carry_request_id():
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "abc123"
