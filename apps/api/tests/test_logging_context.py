from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.context import reset_job_id, set_job_id
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.forms.service import FormService, get_form_service
from app.logging import LogContextFilter
from app.main import app
from app.platform.tasks import TaskSpec
from app.users.api import get_current_actor
from app.users.models import User
from app.users.service import to_actor_user
from app.workflow.actors import Actor, AuthIdentity
from app.workflow.notifications import NotificationDispatcher


class RecordingQueue:
    def enqueue(self, task: TaskSpec) -> str:
        return "task-1"

    def enqueue_flow(self, parent: TaskSpec, children: list[TaskSpec]) -> str:
        return "flow-1"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    user = User(auth_user_id="log-user", type="USER", email="log-user@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    service = FormService(dispatcher=NotificationDispatcher(queue=RecordingQueue()))

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_actor(request: Request) -> Actor:
        actor_user = to_actor_user(user)
        return Actor(user=actor_user, auth=AuthIdentity(id=user.auth_user_id, type=actor_user.type))

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_get_current_actor
    app.dependency_overrides[get_form_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.get("/api/forms/12345", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "app.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/forms/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_workflow_logs_carry_entity_and_correlation_id(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.post(
        "/api/forms",
        json={"object_name": "Logged Lake", "geom": {"type": "Point", "coordinates": [500000.0, 6100000.0]}},
        headers={"X-Correlation-Id": "abc-456"},
    )
    assert response.status_code == 201

    records = [record for record in caplog.records if record.name == "app.workflow"]
    assert any(
        record.getMessage() == "workflow.entity.created"
        and getattr(record, "entity_type", None) == "form"
        and getattr(record, "entity_id", None) == response.json()["id"]
        and getattr(record, "status", None) == "CREATED"
        and getattr(record, "correlation_id", None) == "abc-456"
        for record in records
    )


def test_filter_attaches_job_id_from_context() -> None:
    record = logging.makeLogRecord({"name": "app.documents", "msg": "document.pdf_generated"})
    token = set_job_id("job-77")
    try:
        assert LogContextFilter().filter(record) is True
    finally:
        reset_job_id(token)

    assert getattr(record, "job_id", None) == "job-77"
