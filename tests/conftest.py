import os

# Point the app at a throwaway in-memory database before it is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi.testclient import TestClient

from authorization import seed_role_permissions
from database import Base, SessionLocal, engine
from dependencies import create_access_token, get_password_hash
from main import app
from models import Role, User

PASSWORD = "password123"


@pytest.fixture(scope="session")
def password_hash():
    return get_password_hash(PASSWORD)


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    seed_role_permissions(session)
    yield session
    session.close()


@pytest.fixture
def client(db):
    # Not used as a context manager, so the startup hook does not run
    return TestClient(app)


@pytest.fixture
def make_user(db, password_hash):
    def _make(username, role=Role.MEMBER, is_active=True):
        user = User(
            email=f"{username}@example.com",
            username=username,
            password=password_hash,
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


def auth_header(user):
    token = create_access_token(user.id, user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(make_user):
    return make_user("admin", Role.ADMIN)


@pytest.fixture
def president(make_user):
    return make_user("president", Role.PRESIDENT)


@pytest.fixture
def secretary(make_user):
    return make_user("secretary", Role.SECRETARY)


@pytest.fixture
def member(make_user):
    return make_user("member")
