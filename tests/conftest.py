"""Pytest configuration and shared fixtures."""
import sqlite3

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from recruitflow.database import Base, build_engine
from recruitflow.models.actor import Actor
from recruitflow.models.catalog import DEFAULT_CATALOG
from recruitflow.models.domain import Applicant
from recruitflow.models.audit import SystemAuditEvent
from recruitflow.services.lifecycle import ApplicantLifecycle
from recruitflow.services.system_audit import SystemAuditWriter


@pytest.fixture
def db_engine(tmp_path):
    """A fresh SQLite file per test, so separate sessions see each other's commits."""
    engine = build_engine(f"sqlite:///{tmp_path / 'recruitflow_test.db'}", timeout=1.0)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def locked_store(db_engine):
    """
    Holds an exclusive lock on the database file, like a stuck writer would.
    Call the returned function to release it early.
    """
    conn = sqlite3.connect(db_engine.url.database, isolation_level=None)
    conn.execute("BEGIN EXCLUSIVE")

    def release():
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    yield release
    release()
    conn.close()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def system_audit(session_factory):
    return SystemAuditWriter(session_factory)


@pytest.fixture
def lifecycle(db_session, system_audit):
    return ApplicantLifecycle(db_session, catalog=DEFAULT_CATALOG, system_audit=system_audit)


@pytest.fixture
def actor():
    return Actor(username="admin", ip="10.0.0.7")


@pytest.fixture
def sample_applicant(lifecycle, actor):
    """A basic applicant in the first stage."""
    return lifecycle.create(
        {
            "name": "Asha Rao",
            "uniqueCode": "C1",
            "contactNumber": "9876543210",
            "gender": "Female",
            "college": "Govt Engineering College",
            "branch": "Mechanical",
            "year": 3,
            "email": "Asha@Example.com",
            "scores": {"Physical": 72},
        },
        actor,
    )


@pytest.fixture
def system_events(session_factory):
    """Reads the system audit log through its own session."""
    def _events(action=None):
        session = session_factory()
        try:
            q = session.query(SystemAuditEvent)
            if action is not None:
                q = q.filter(SystemAuditEvent.action == action)
            return q.order_by(SystemAuditEvent.id).all()
        finally:
            session.close()
    return _events


@pytest.fixture
def client(session_factory):
    """API client wired to the test database with a fixed principal."""
    from recruitflow.main import app
    from recruitflow.database import get_db
    from recruitflow.api.auth import get_actor
    from recruitflow.api.routes import get_audit_session_factory

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_session_factory] = lambda: session_factory
    app.dependency_overrides[get_actor] = lambda: Actor(username="api_admin", ip="127.0.0.1")
    yield TestClient(app)
    app.dependency_overrides.clear()
