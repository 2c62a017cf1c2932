import os

# Settings are read at import time, so configure them before any backend import.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SECRET_KEY"] = "test-secret-key-with-enough-entropy-0123456789"
os.environ["MASTER_ENCRYPTION_KEY"] = "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA="
os.environ["PASSWORD_HASH_ROUNDS"] = "1000"
os.environ["REFRESH_COOKIE_SECURE"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import models.auth_log  # noqa: F401
import models.refresh_token  # noqa: F401
from core.brute_force import BruteForceGuard
from core.cache import TTLCache
from core.security import hash_password
from database import Base, build_engine, get_db
from main import create_app
from models.user import User

PASSWORD = "P@ss1234"


class FakeClock:
    """Monotonic clock the tests can move forward by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def engine(tmp_path):
    # File-backed so that several threads/sessions can share it
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_client(session_factory, clock):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def _make(guard=None):
        app = create_app(guard=guard or BruteForceGuard(TTLCache(clock=clock)))
        app.dependency_overrides[get_db] = _override_get_db
        # https so that the Secure refresh cookie is stored and sent back
        return TestClient(app, base_url="https://testserver")

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def create_user(db):
    def _create(username="alice", password=PASSWORD, role="Viewer", email=None, is_active=True):
        password_hash, salt = hash_password(password)
        user = User(
            username=username,
            email=email or f"{username}@garden.example",
            password_hash=password_hash,
            salt=salt,
            role=role,
            is_active=is_active,
            two_factor_enabled=False,
            failed_login_count=0,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _create


def register(client, username="alice", password=PASSWORD, email=None):
    return client.post(
        "/auth/register",
        json={
            "username": username,
            "email": email or f"{username}@garden.example",
            "password": password,
        },
    )


def login(client, username="alice", password=PASSWORD):
    return client.post("/auth/login", json={"username": username, "password": password})


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def post_with_refresh_cookie(client, path: str, token: str, **kwargs):
    """Send *token* as the only refreshToken cookie."""
    client.cookies.clear()
    headers = kwargs.pop("headers", {})
    headers["Cookie"] = f"refreshToken={token}"
    return client.post(path, headers=headers, **kwargs)
