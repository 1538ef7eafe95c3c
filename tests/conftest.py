"""
pytest configuration and shared fixtures for the guest gateway tests.

Tests must not need Postgres or a real upstream API key:
  1. Each test gets its own SQLite file database with the schema created and
     the built-in roles seeded.
  2. get_db is overridden so the route uses sessions from that database.
  3. The upstream call is replaced by FakeUpstream, which records payloads
     and returns a canned completion.
"""

import os

# Set env vars BEFORE importing the app so module-level engine setup is skipped
os.environ["DATABASE_URL"] = ""
os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "false"
os.environ.setdefault("GROQ_API_KEY", "test-groq-key")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import sessionmaker

from guest_gateway.core.role_limits import GUEST_ROLE_ID
from guest_gateway.db.init_db import create_tables, ensure_builtin_roles
from guest_gateway.db.session import build_engine
from guest_gateway.models import ClientIdentity, DailyUsage
from guest_gateway.services.upstream_client import UpstreamResult
from guest_gateway.services.usage_tracker import usage_today

COMPLETION = {
    "id": "chatcmpl-test",
    "object": "chat.completion",
    "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hello!"}}],
}


class FakeUpstream:
    """Stand-in for forward_completion: records calls, returns a fixed result."""

    def __init__(self):
        self.calls = []
        self.status_code = 200
        self.body = dict(COMPLETION)
        self.error = None

    def __call__(self, payload, api_key, url, timeout):
        self.calls.append({"payload": payload, "api_key": api_key, "url": url, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return UpstreamResult(status_code=self.status_code, body=self.body)


@pytest.fixture(autouse=True)
def gateway_env(monkeypatch):
    """Known limits and credentials for every test, regardless of the shell env."""
    monkeypatch.setenv("GROQ_API_KEY", "test-groq-key")
    monkeypatch.delenv("DAILY_LIMIT", raising=False)
    monkeypatch.delenv("VELOCITY_LIMIT", raising=False)
    monkeypatch.delenv("VELOCITY_WINDOW_SECONDS", raising=False)
    monkeypatch.delenv("UPSTREAM_URL", raising=False)


@pytest.fixture()
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'guest.db'}")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = factory()
    try:
        ensure_builtin_roles(db)
    finally:
        db.close()
    return factory


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def upstream(monkeypatch):
    fake = FakeUpstream()
    monkeypatch.setattr("guest_gateway.services.quota_gateway.forward_completion", fake)
    return fake


@pytest.fixture()
async def client(session_factory, upstream):  # noqa: ARG001 (upstream must be patched first)
    """
    HTTPX async test client wired to the FastAPI app and the test database.

    Usage:
        async def test_something(client):
            response = await client.post("/", json=guest_body())
    """
    from guest_gateway.db.session import get_db
    from guest_gateway.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
def seed_identity(db):
    """Create an identity (and optionally today's usage) directly in the store."""

    def _seed(client_token, device_signature, usage=None, role_id=GUEST_ROLE_ID):
        identity = ClientIdentity(client_token=client_token, device_signature=device_signature, role_id=role_id)
        db.add(identity)
        db.commit()
        if usage is not None:
            db.add(DailyUsage(user_id=identity.id, usage_date=usage_today(), usage_count=usage))
            db.commit()
        return identity.id

    return _seed


def guest_body(client_token="c1", device_signature="d1", parallel_count=None, **extra):
    meta = {"clientUuid": client_token, "deviceFingerprint": device_signature}
    if parallel_count is not None:
        meta["parallelCount"] = parallel_count
    body = {
        "model": "llama-3.1-8b-instant",
        "messages": [{"role": "user", "content": "hi"}],
        "_meta": meta,
    }
    body.update(extra)
    return body
