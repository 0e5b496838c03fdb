from __future__ import annotations

from collections.abc import Generator, Sequence
from pathlib import Path

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import Base, get_db
from app.data_requests.models import DataRequest
from app.data_requests.service import DataRequestService, get_request_service
from app.documents.pipeline import DocumentPipeline, encode_screenshots, object_hash
from app.documents.secrets import get_request_secret
from app.main import app
from app.platform.objects import WaterObject
from app.platform.storage import LocalBlobStore
from app.platform.tasks import TaskSpec
from app.users.api import get_current_actor
from app.users.models import User
from app.users.service import to_actor_user
from app.workflow.actors import Actor, AuthIdentity
from app.workflow.notifications import NotificationDispatcher
from app.workflow.statuses import UserType


class RecordingQueue:
    def __init__(self) -> None:
        self.tasks: list[TaskSpec] = []
        self.flows: list[tuple[TaskSpec, list[TaskSpec]]] = []

    def enqueue(self, task: TaskSpec) -> str:
        self.tasks.append(task)
        return f"task-{len(self.tasks)}"

    def enqueue_flow(self, parent: TaskSpec, children: list[TaskSpec]) -> str:
        self.flows.append((parent, children))
        return f"flow-{len(self.flows)}"


class StaticObjects:
    def find_by_cadastral_ids(self, cadastral_ids: Sequence[str]) -> list[WaterObject]:
        return [WaterObject(cadastral_id=item, name=f"Lake {item}") for item in cadastral_ids]


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
def clear_stubs() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture()
def holder() -> ActorHolder:
    return ActorHolder()


@pytest.fixture()
def users(db_session: Session) -> dict[str, User]:
    created: dict[str, User] = {}
    for sub, user_type in (("owner", UserType.USER), ("admin", UserType.ADMIN)):
        user = User(auth_user_id=sub, type=user_type.value, email=f"{sub}@example.com")
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        created[sub] = user
    return created


@pytest.fixture()
def client(
    db_session: Session, queue: RecordingQueue, holder: ActorHolder, tmp_path: Path
) -> Generator[TestClient, None, None]:
    pipeline = DocumentPipeline(
        blob_store=LocalBlobStore(str(tmp_path), "http://files.test"),
        objects=StaticObjects(),
        queue=queue,
    )
    service = DataRequestService(dispatcher=NotificationDispatcher(queue=queue), pipeline=pipeline)

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_actor(request: Request) -> Actor:
        assert holder.actor is not None
        return holder.actor

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_get_current_actor
    app.dependency_overrides[get_request_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _as(holder: ActorHolder, user: User) -> None:
    actor_user = to_actor_user(user)
    holder.actor = Actor(user=actor_user, auth=AuthIdentity(id=user.auth_user_id, type=actor_user.type))


def _create_request(client: TestClient, **overrides: object) -> dict:
    payload: dict[str, object] = {
        "purpose": "TEACHING",
        "objects": [{"id": "10010001", "type": "CADASTRAL_ID"}],
        "geom": {"type": "Point", "coordinates": [500000.0, 6100000.0]},
    }
    payload.update(overrides)
    response = client.post("/api/requests", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_user_creates_pending_request(client: TestClient, holder: ActorHolder, users: dict[str, User], queue: RecordingQueue) -> None:
    _as(holder, users["owner"])

    created = _create_request(client)

    assert created["status"] == "CREATED"
    assert created["notify_email"] == "owner@example.com"
    assert created["generated_file"] is None
    assert queue.flows == []


def test_other_purpose_requires_value(client: TestClient, holder: ActorHolder, users: dict[str, User]) -> None:
    _as(holder, users["owner"])

    response = client.post("/api/requests", json={"purpose": "OTHER"})

    assert response.status_code == 422
    assert response.json()["code"] == "request_create_failed"
    assert response.json()["message"] == "Purpose value must be provided"


def test_admin_request_is_approved_and_pipeline_started(
    client: TestClient, holder: ActorHolder, users: dict[str, User], queue: RecordingQueue
) -> None:
    _as(holder, users["admin"])

    created = _create_request(client)

    assert created["status"] == "APPROVED"
    assert len(queue.flows) == 1

    history = client.get(f"/api/requests/{created['id']}/history")
    assert history.status_code == 200
    assert [row["type"] for row in history.json()["rows"]] == ["APPROVED", "CREATED"]


def test_admin_approves_user_request(client: TestClient, holder: ActorHolder, users: dict[str, User], queue: RecordingQueue) -> None:
    _as(holder, users["owner"])
    created = _create_request(client)

    _as(holder, users["admin"])
    approved = client.patch(f"/api/requests/{created['id']}", json={"status": "APPROVED"})

    assert approved.status_code == 200
    assert approved.json()["status"] == "APPROVED"
    assert approved.json()["responded_at"] is not None
    assert len(queue.flows) == 1


def test_generate_requires_approved_request(client: TestClient, holder: ActorHolder, users: dict[str, User]) -> None:
    _as(holder, users["owner"])
    created = _create_request(client)

    response = client.post(f"/api/requests/{created['id']}/generate")

    assert response.status_code == 422
    assert response.json()["code"] == "request_generate_failed"


def test_regenerate_is_admin_only(client: TestClient, holder: ActorHolder, users: dict[str, User], queue: RecordingQueue) -> None:
    _as(holder, users["admin"])
    created = _create_request(client)

    _as(holder, users["owner"])
    forbidden = client.patch(f"/api/requests/{created['id']}/regenerate-pdf")
    assert forbidden.status_code == 403

    _as(holder, users["admin"])
    response = client.patch(f"/api/requests/{created['id']}/regenerate-pdf")
    assert response.status_code == 200
    assert response.json() == {"generating": True, "job_id": "flow-2"}


def test_html_view_is_gated_by_secret(
    client: TestClient, holder: ActorHolder, users: dict[str, User], db_session: Session
) -> None:
    _as(holder, users["admin"])
    created = _create_request(client)
    stored = db_session.get(DataRequest, created["id"])
    assert stored is not None
    secret = get_request_secret(stored.id, stored.created_at)

    page = client.get(f"/api/requests/{stored.id}/html", params={"secret": secret})
    assert page.status_code == 200
    assert page.headers["content-type"].startswith("text/html")
    assert "Lake 10010001" in page.text

    wrong = client.get(f"/api/requests/{stored.id}/html", params={"secret": "nope"})
    assert wrong.status_code == 404
    assert wrong.json()["code"] == "request_html_failed"


def test_html_view_renders_screenshot_map_from_query(
    client: TestClient, holder: ActorHolder, users: dict[str, User], db_session: Session
) -> None:
    _as(holder, users["admin"])
    created = _create_request(client)
    stored = db_session.get(DataRequest, created["id"])
    assert stored is not None
    secret = get_request_secret(stored.id, stored.created_at)
    token = encode_screenshots({object_hash("10010001"): "http://cdn.test/child.jpeg"})

    page = client.get(f"/api/requests/{stored.id}/html", params={"secret": secret, "screenshots": token})
    assert page.status_code == 200
    assert 'src="http://cdn.test/child.jpeg"' in page.text

    malformed = client.get(f"/api/requests/{stored.id}/html", params={"secret": secret, "screenshots": "WzFd"})
    assert malformed.status_code == 422
    assert malformed.json()["code"] == "request_html_failed"


def test_geometry_endpoint_returns_feature_collection(client: TestClient, holder: ActorHolder, users: dict[str, User]) -> None:
    _as(holder, users["owner"])
    created = _create_request(client)

    response = client.get(f"/api/requests/{created['id']}/geom")

    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "FeatureCollection"
    assert body["features"][0]["properties"]["id"] == created["id"]


def test_missing_request_is_not_found(client: TestClient, holder: ActorHolder, users: dict[str, User]) -> None:
    _as(holder, users["owner"])

    response = client.get("/api/requests/999")

    assert response.status_code == 404
    assert response.json()["code"] == "request_get_failed"
