# tests/conftest.py

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import auth, crud, schemas
from app.deps import get_db
from app.models import audit_logs  # noqa: F401
from app.services import evidence
from app.services.audit_log import audit_logger
from database import Base
from main import app

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def _database(monkeypatch, tmp_path):
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(audit_logger, "session_factory", TestingSessionLocal)
    monkeypatch.setattr(audit_logger, "pending", [])
    monkeypatch.setattr(evidence, "EVIDENCE_DIRECTORY", str(tmp_path / "evidence"))
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def factory(db):
    return crud.create_factory(db, schemas.FactoryCreate(
        name="Phnom Penh Garments", code="PPG-01", country="KH", industry="apparel", size=1200,
    ))


@pytest.fixture
def other_factory(db):
    return crud.create_factory(db, schemas.FactoryCreate(name="Siem Reap Textiles", code="SRT-02", country="KH"))


def headers_for(user):
    token = auth.create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role, factory_id=None, full_name=None):
        counter["n"] += 1
        user = crud.create_user(db, schemas.UserCreate(
            email=f"{role}{counter['n']}@example.com",
            password="correct-horse-battery",
            full_name=full_name or f"{role} {counter['n']}",
            role=role,
            factory_id=factory_id,
        ))
        return user, headers_for(user)

    return _make


@pytest.fixture
def super_admin(make_user):
    return make_user("super_admin")


@pytest.fixture
def factory_admin(make_user, factory):
    return make_user("factory_admin", factory.id)


@pytest.fixture
def auditor(make_user, factory):
    return make_user("auditor", factory.id)


@pytest.fixture
def session_factory():
    return TestingSessionLocal
