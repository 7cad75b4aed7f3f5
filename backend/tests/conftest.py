"""Shared fixtures: in-memory profile store database, app client, store doubles."""
import os
from dataclasses import replace
from datetime import datetime, timezone

# Keep the import-time create_all() in organchain.main off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from organchain.core.errors import AlreadyExists, ProfileNotFound  # noqa: E402
from organchain.models.base import Base, get_db  # noqa: E402
import organchain.models.audit  # noqa: F401, E402
import organchain.models.donor  # noqa: F401, E402
import organchain.models.recipient  # noqa: F401, E402


@pytest.fixture()
def session_factory(monkeypatch):
    """Provide an isolated in-memory SQLite database for each test."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestSession = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    import organchain.core.audit_middleware as am
    monkeypatch.setattr(am, "SessionLocal", TestSession)

    yield TestSession
    test_engine.dispose()


@pytest.fixture()
def app(session_factory):
    from organchain.main import app as fastapi_app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as c:
        yield c


class FakeProfileStore:
    """In-process ProfileStoreClient double with failure injection."""

    def __init__(self):
        self.records = {}
        self.fail_with = None
        self.calls = []

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def create(self, profile):
        self.calls.append(("create", profile.identity))
        self._maybe_fail()
        if profile.identity in self.records:
            raise AlreadyExists(f"Profile for {profile.identity} already exists")
        stored = replace(profile, created_at=profile.created_at or datetime.now(timezone.utc))
        self.records[profile.identity] = stored
        return stored

    async def fetch_by_identity(self, identity):
        self.calls.append(("fetch", identity))
        self._maybe_fail()
        if identity not in self.records:
            raise ProfileNotFound(f"No profile for {identity}")
        return self.records[identity]

    async def update_status(self, identity, fields):
        self.calls.append(("update", identity))
        self._maybe_fail()
        if identity not in self.records:
            raise ProfileNotFound(f"No profile for {identity}")
        self.records[identity] = replace(self.records[identity], **fields)
        return self.records[identity]


@pytest.fixture()
def profile_store():
    return FakeProfileStore()
