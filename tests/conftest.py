"""Shared fixtures: isolated data dir, fresh tables per test, session tokens."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

# Setup environment for testing (before any timetable_server import)
os.environ["TIMETABLE_DATA_DIR"] = tempfile.mkdtemp()
os.environ["TIMETABLE_DB_PATH"] = os.path.join(os.environ["TIMETABLE_DATA_DIR"], "test.db")
os.environ["TIMETABLE_SESSION_JWT_SECRET"] = "test-session-secret-with-enough-length-for-hs256"

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from timetable_server.api.deps import register_limiter
from timetable_server.config import settings
from timetable_server.database import engine, init_db
from timetable_server.main import app
from timetable_server.services.identity import SessionIdentity


def make_session_token(user_id: str, email: str | None = None, expires_in: int = 3600) -> str:
    payload = {
        "sub": user_id,
        "aud": settings.session_jwt_audience,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.session_jwt_secret, algorithm="HS256")


def session_headers(user_id: str, email: str | None = None) -> dict:
    return {"X-Session-Token": make_session_token(user_id, email)}


@pytest.fixture(autouse=True)
def fresh_db():
    SQLModel.metadata.drop_all(engine)
    init_db()
    register_limiter.reset()
    yield


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def alice() -> SessionIdentity:
    return SessionIdentity(user_id="u1", email="a@example.com")


@pytest.fixture
def bob() -> SessionIdentity:
    return SessionIdentity(user_id="u2", email="b@example.com")


@pytest.fixture
def paired(client):
    """A device paired to u1 through the HTTP flow. Returns (device_id, token)."""
    r = client.post("/api/devices/register", json={})
    reg = r.json()
    client.post("/api/devices/link", json={"code": reg["code"]}, headers=session_headers("u1", "a@example.com"))
    r = client.post("/api/devices/exchange", json={"deviceId": reg["deviceId"], "code": reg["code"]})
    return reg["deviceId"], r.json()["token"]
