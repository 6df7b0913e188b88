"""
tests/conftest.py -- Shared fixtures for the auth core tests.

Every test gets its own in-memory SQLite database. StaticPool keeps a single
connection alive so TestClient's worker threads and the test body see the
same schema and rows; plain ":memory:" would hand each connection a blank DB.

Environment overrides must be in place before any app module is imported,
because core.config builds its Settings instance at import time.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator
from datetime import datetime, timezone

_tmp_dir = tempfile.mkdtemp(prefix="auth-core-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp_dir, 'app.db')}"
os.environ["SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["STORAGE_RETRY_BACKOFF_SECONDS"] = "0"
os.environ["BASE_URL"] = "http://testserver"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import build_engine, get_db
from core.oauth import get_exchanges
from main import app
from models.base import Base
from schemas.auth_schema import VerifiedIdentity


class FakeExchange:
    """Stands in for a provider: returns a canned identity or raises a canned error."""

    def __init__(self, provider: str, identity: VerifiedIdentity | None = None, error: Exception | None = None):
        self.provider = provider
        self.identity = identity
        self.error = error
        self.calls: list[tuple[str, str, str | None]] = []

    def authorization_url(self, state: str, redirect_uri: str, code_verifier: str | None = None) -> str:
        return f"https://{self.provider}.example/authorize?state={state}&redirect_uri={redirect_uri}"

    def exchange(self, code: str, redirect_uri: str, code_verifier: str | None = None) -> VerifiedIdentity:
        self.calls.append((code, redirect_uri, code_verifier))
        if self.error is not None:
            raise self.error
        return self.identity


def make_identity(**overrides) -> VerifiedIdentity:
    data = {"provider": "google", "subject": "g-123", "email": "a@x.com", "name": "A"}
    data.update(overrides)
    return VerifiedIdentity(**data)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def identity() -> VerifiedIdentity:
    return make_identity()


@pytest.fixture
def exchanges(identity) -> dict[str, FakeExchange]:
    return {"google": FakeExchange("google", identity=identity)}


@pytest.fixture
def client(session_factory, exchanges) -> Generator[TestClient, None, None]:
    """TestClient wired to the per-test database and fake provider exchanges.

    follow_redirects=False so tests can assert on Location headers.
    """

    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_exchanges] = lambda: exchanges
    with TestClient(app, follow_redirects=False) as c:
        yield c
    app.dependency_overrides.clear()
