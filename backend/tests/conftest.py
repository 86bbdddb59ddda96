import os
import tempfile
from pathlib import Path

# Settings are read at import time, so point them at a scratch directory first.
_TMP = Path(tempfile.mkdtemp(prefix="thesis-api-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENV"] = "dev"
os.environ["MAIL_HOST"] = ""

import pytest
from sqlmodel import Session, SQLModel

from thesis_api import main, models
from thesis_api.database import engine
from thesis_api.errors import DeliveryError
from thesis_api.seed import seed_roles
from thesis_api.services import access_token_for, hash_password
from thesis_api.utils.mailer import get_mailer

DEFAULT_PASSWORD = "Secret#123"


class FakeMailer:
    """Records reset links instead of talking to SMTP."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send_password_reset(self, to, name, reset_url):
        if self.fail:
            raise DeliveryError("could not send the email, try again later")
        self.sent.append({"to": to, "name": name, "reset_url": reset_url})

    @property
    def last_token(self):
        return self.sent[-1]["reset_url"].rsplit("/", 1)[-1]


def _seed():
    with Session(engine) as session:
        roles = seed_roles(session)
        career = models.Career(name="Desarrollo de Software")
        session.add(career)
        session.commit()
        return {
            "roles": {name: role.id for name, role in roles.items()},
            "career_id": career.id,
        }


@pytest.fixture(autouse=True)
def fresh_db():
    """Recreate the schema and seed roles, permissions and one career."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    main._auth_rate_limiter.reset()
    yield _seed()
    main.app.dependency_overrides.clear()


@pytest.fixture
def seed(fresh_db):
    return fresh_db


@pytest.fixture(autouse=True)
def mailer():
    fake = FakeMailer()
    main.app.dependency_overrides[get_mailer] = lambda: fake
    return fake


@pytest.fixture
def make_user(seed):
    """Insert a user directly and return `(user_id, auth_headers)`."""
    counter = {"n": 0}

    def _make(role="USER", email=None, password=DEFAULT_PASSWORD, name=None):
        counter["n"] += 1
        email = email or f"{role.lower()}{counter['n']}@gmail.com"
        with Session(engine) as session:
            user = models.User(
                email=email,
                password_hash=hash_password(password),
                name=name or f"{role.title()} {counter['n']}",
                role_id=seed["roles"][role],
                career_id=seed["career_id"],
            )
            session.add(user)
            session.commit()
            user_id = user.id
        return user_id, {"Authorization": f"Bearer {access_token_for(user_id)}"}

    return _make
