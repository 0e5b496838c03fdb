from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import Base, get_db
from app.forms.service import FormService, get_form_service
from app.main import app
from app.platform.tasks import TaskSpec
from app.users.api import get_current_actor
from app.users.models import User
from app.users.service import to_actor_user
from app.workflow.actors import Actor, AuthIdentity
from app.workflow.notifications import NotificationDispatcher
from app.workflow.statuses import UserType


class RecordingQueue:
    def enqueue(self, task: TaskSpec) -> str:
        return "task-1"

    def enqueue_flow(self, parent: TaskSpec, children: list[TaskSpec]) -> str:
        return "flow-1"


class ActorHolder:
    def __init__(self) -> None:
        self.actor: Actor | None = None


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
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def holder() -> ActorHolder:
    return ActorHolder()


@pytest.fixture()
def users(db_session: Session) -> dict[str, User]:
    created: dict[str, User] = {}
    for sub, user_type in (("metrics-user", UserType.USER), ("metrics-admin", UserType.ADMIN)):
        user = User(auth_user_id=sub, type=user_type.value, email=f"{sub}@example.com")
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        created[sub] = user
    return created


@pytest.fixture()
def client(db_session: Session, holder: ActorHolder) -> Generator[TestClient, None, None]:
    service = FormService(dispatcher=NotificationDispatcher(queue=RecordingQueue()))

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_actor() -> Actor:
        assert holder.actor is not None
        return holder.actor

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_get_current_actor
    app.dependency_overrides[get_form_service] = lambda: service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _as(holder: ActorHolder, user: User) -> None:
    actor_user = to_actor_user(user)
    holder.actor = Actor(user=actor_user, auth=AuthIdentity(id=user.auth_user_id, type=actor_user.type))


def test_metrics_endpoint_exposes_http_and_workflow_metrics(
    client: TestClient, holder: ActorHolder, users: dict[str, User]
) -> None:
    health = client.get("/health")
    assert health.status_code == 200

    _as(holder, users["metrics-user"])
    form = client.post(
        "/api/forms",
        json={"object_name": "Metrics Lake", "geom": {"type": "Point", "coordinates": [500000.0, 6100000.0]}},
    )
    assert form.status_code == 201

    _as(holder, users["metrics-admin"])
    approved = client.patch(f"/api/forms/{form.json()['id']}", json={"status": "APPROVED"})
    assert approved.status_code == 200

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "workflow_transitions_total" in body
    assert "workflow_history_records_total" in body

    assert 'path="/health"' in body
    assert 'path="/api/forms/{id}"' in body
    assert 'entity_type="form",status="APPROVED"' in body


def test_metrics_require_administrator(client: TestClient, holder: ActorHolder, users: dict[str, User]) -> None:
    _as(holder, users["metrics-user"])

    response = client.get("/metrics")

    assert response.status_code == 403


def test_metrics_hidden_when_disabled(
    client: TestClient, holder: ActorHolder, users: dict[str, User], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()
    _as(holder, users["metrics-admin"])

    response = client.get("/metrics")

    assert response.status_code == 404
