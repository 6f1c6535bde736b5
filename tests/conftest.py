"""Pytest configuration and shared fixtures.

Every test gets a fresh SQLite in-memory database. The FastAPI app is driven
through ``TestClient`` with the database, settings and mailer dependencies
overridden, so no SMTP server or PostgreSQL instance is needed.
"""

import os

# Must be set before claimflow.db.session builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Dict, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from claimflow.api.deps import get_db, get_mailer, get_settings_dep
from claimflow.api.main import app
from claimflow.core.config import Settings
from claimflow.core.security import create_session_token
from claimflow.db.base import Base
import claimflow.db.models  # noqa: F401
from claimflow.services.notifications import NotificationDispatcher

from tests import factories


class RecordingMailer:
    """Mailer double that keeps every message instead of sending it."""

    def __init__(self):
        self.sent: List[Dict[str, str]] = []
        self.fail_for: set = set()

    async def send(self, to, subject, html, text, attachments=None):
        if to in self.fail_for:
            raise ConnectionError(f"SMTP refused {to}")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return True

    def to(self, recipient: str) -> List[Dict[str, str]]:
        return [m for m in self.sent if m["to"] == recipient]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        secret_key="test-secret-key",
        base_url="http://testserver",
        smtp_host=None,
        notify_override_email=None,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite does not emit BEGIN itself; SAVEPOINTs need it to
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Database session on a fresh in-memory database."""
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def dispatcher(mailer, settings) -> NotificationDispatcher:
    return NotificationDispatcher(mailer, settings)


@pytest.fixture
def client(db_session, settings, mailer):
    """TestClient sharing the test's database session."""

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings_dep] = lambda: settings
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(settings):
    """Build a Bearer header for an identity: ``auth_headers("a@x.com", role="hr")``."""

    def _headers(identity: str, role: str = "user") -> Dict[str, str]:
        token = create_session_token(identity, role, settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def directory(db_session):
    """A small staff directory: two managers and a requester."""
    factories.create_directory_entry(db_session, name="Dana Manager", email="Dana.Manager@Corp.com")
    factories.create_directory_entry(db_session, name="Omar Lead", email="omar.lead@corp.com")
    factories.create_directory_entry(
        db_session,
        name="Riya Requester",
        email="riya@corp.com",
        manager_name="Dana Manager",
        manager_email="dana.manager@corp.com",
    )
    db_session.commit()
    return db_session


@pytest.fixture
def approval_factory(db_session, settings):
    def _create(**kwargs):
        kwargs.setdefault("hr_email", settings.hr_email)
        kwargs.setdefault("accounts_email", settings.accounts_email)
        approval = factories.create_approval(db_session, **kwargs)
        db_session.commit()
        return approval

    return _create


@pytest.fixture
def hr(settings) -> str:
    return settings.hr_email


@pytest.fixture
def accounts(settings) -> str:
    return settings.accounts_email


