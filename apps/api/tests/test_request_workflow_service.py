from __future__ import annotations

from collections.abc import Generator, Sequence
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import Base
from app.data_requests.models import DataRequest, DataRequestHistory
from app.data_requests.schemas import DataRequestCreate, DataRequestUpdate
from app.data_requests.service import DataRequestService
from app.documents.pipeline import GENERATE_PDF_TASK, SAVE_SCREENSHOT_TASK, DocumentPipeline, object_hash
from app.documents.secrets import get_request_secret
from app.platform.objects import WaterObject
from app.platform.storage import LocalBlobStore
from app.platform.tasks import TaskSpec
from app.users.models import User
from app.users.service import to_actor_user
from app.workflow.actors import Actor, AuthIdentity
from app.workflow.controller import AUTO_APPROVE_COMMENT
from app.workflow.errors import EntityNotFoundError, WorkflowAuthorizationError, WorkflowValidationError
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
        return [WaterObject(cadastral_id=item, name=f"Lake {item}", category="Natural lake", area=12.5) for item in cadastral_ids]


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
def clear_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture()
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(str(tmp_path), "http://files.test")


@pytest.fixture()
def service(queue: RecordingQueue, blob_store: LocalBlobStore) -> DataRequestService:
    pipeline = DocumentPipeline(blob_store=blob_store, objects=StaticObjects(), queue=queue)
    return DataRequestService(dispatcher=NotificationDispatcher(queue=queue), pipeline=pipeline)


def _user(session: Session, sub: str, *, user_type: UserType = UserType.USER) -> User:
    user = User(auth_user_id=sub, type=user_type.value, email=f"{sub}@example.com")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def _actor(user: User) -> Actor:
    actor_user = to_actor_user(user)
    return Actor(user=actor_user, auth=AuthIdentity(id=user.auth_user_id, type=actor_user.type))


def _payload(**overrides: object) -> DataRequestCreate:
    values: dict[str, object] = {
        "purpose": "TEACHING",
        "delivery": "EMAIL",
        "objects": [{"id": "10010001"}, {"id": "10010002"}, {"id": "10010001"}],
    }
    values.update(overrides)
    return DataRequestCreate.model_validate(values)


def _history(session: Session, request_id: int) -> list[DataRequestHistory]:
    return list(
        session.scalars(
            select(DataRequestHistory).where(DataRequestHistory.parent_id == request_id).order_by(DataRequestHistory.id.asc())
        ).all()
    )


def test_other_purpose_requires_value(db_session: Session, service: DataRequestService) -> None:
    user = _user(db_session, "user")

    with pytest.raises(WorkflowValidationError) as exc_info:
        service.create_request(db_session, _actor(user), _payload(purpose="OTHER"))

    assert exc_info.value.details == {"field": "purpose_value"}
    assert db_session.scalars(select(DataRequest)).all() == []


def test_user_request_starts_created_without_side_effects(
    db_session: Session, service: DataRequestService, queue: RecordingQueue
) -> None:
    user = _user(db_session, "user")

    created = service.create_request(db_session, _actor(user), _payload(purpose="OTHER", purpose_value="Thesis"))

    assert created.status == "CREATED"
    assert created.notify_email == user.email
    assert [item.type for item in _history(db_session, created.id)] == ["CREATED"]
    assert queue.tasks == []
    assert queue.flows == []


def test_admin_request_is_auto_approved_and_generation_starts(
    db_session: Session, service: DataRequestService, queue: RecordingQueue
) -> None:
    admin = _user(db_session, "admin", user_type=UserType.ADMIN)

    created = service.create_request(db_session, _actor(admin), _payload())

    assert created.status == "APPROVED"
    history = _history(db_session, created.id)
    assert [item.type for item in history] == ["CREATED", "APPROVED"]
    assert history[1].comment == AUTO_APPROVE_COMMENT

    assert len(queue.flows) == 1
    parent, children = queue.flows[0]
    assert parent.name == GENERATE_PDF_TASK
    assert parent.kwargs == {"request_id": created.id}
    assert [child.name for child in children] == [SAVE_SCREENSHOT_TASK, SAVE_SCREENSHOT_TASK]
    assert [child.kwargs["hash"] for child in children] == [object_hash("10010001"), object_hash("10010002")]
    assert children[0].kwargs["url"].endswith("/uetk?item=10010001")
    assert queue.tasks == []


def test_system_caller_may_create_approved_request(
    db_session: Session, service: DataRequestService, queue: RecordingQueue
) -> None:
    created = service.create_request(db_session, None, _payload(status="APPROVED"))

    assert created.status == "APPROVED"
    assert created.created_by is None
    assert len(queue.flows) == 1


def test_user_cannot_create_approved_request(db_session: Session, service: DataRequestService) -> None:
    user = _user(db_session, "user")
    with pytest.raises(WorkflowValidationError):
        service.create_request(db_session, _actor(user), _payload(status="APPROVED"))


def test_approval_defers_email_until_file_exists(
    db_session: Session, service: DataRequestService, queue: RecordingQueue
) -> None:
    user = _user(db_session, "user")
    admin = _user(db_session, "admin", user_type=UserType.ADMIN)
    created = service.create_request(db_session, _actor(user), _payload())

    approved = service.update_request(db_session, _actor(admin), created.id, DataRequestUpdate(status="APPROVED"))

    assert approved.status == "APPROVED"
    assert approved.responded_at is not None
    assert len(queue.flows) == 1
    assert queue.tasks == []

    service.save_generated_file(db_session, created.id, "http://files.test/uploads/requests/private/1/extract-1.pdf")
    service.save_generated_file(db_session, created.id, "http://files.test/uploads/requests/private/1/extract-1.pdf")

    history = _history(db_session, created.id)
    assert [item.type for item in history] == ["CREATED", "APPROVED", "FILE_GENERATED"]
    assert history[-1].created_by is None

    assert len(queue.tasks) == 1
    assert queue.tasks[0].kwargs["template"] == "request-file-generated"
    assert queue.tasks[0].kwargs["recipient"] == user.email

    visible = service.get_request(db_session, _actor(user), created.id)
    assert visible.generated_file is not None


def test_rejection_notifies_notify_email(
    db_session: Session, service: DataRequestService, queue: RecordingQueue
) -> None:
    user = _user(db_session, "user")
    admin = _user(db_session, "admin", user_type=UserType.ADMIN)
    created = service.create_request(db_session, _actor(user), _payload(notify_email="office@example.com"))

    service.update_request(db_session, _actor(admin), created.id, DataRequestUpdate(status="REJECTED", comment="Out of scope"))

    assert len(queue.tasks) == 1
    task = queue.tasks[0]
    assert task.kwargs["recipient"] == "office@example.com"
    assert task.kwargs["template"] == "request-update"
    assert task.kwargs["variables"]["title"] == "Rejected"
    assert task.kwargs["variables"]["actionUrl"].endswith(f"/prasymai/{created.id}")
    assert queue.flows == []


def test_generated_file_hidden_from_user_until_approved(db_session: Session, service: DataRequestService) -> None:
    user = _user(db_session, "user")
    admin = _user(db_session, "admin", user_type=UserType.ADMIN)
    request = DataRequest(status="SUBMITTED", objects=[], created_by=user.id, generated_file="http://files.test/a.pdf", row_version=1)
    db_session.add(request)
    db_session.commit()

    assert service.to_read(request, _actor(user)).generated_file is None
    assert service.to_read(request, _actor(admin)).generated_file == "http://files.test/a.pdf"


def test_resubmission_discards_generated_file(
    db_session: Session,
    service: DataRequestService,
    blob_store: LocalBlobStore,
) -> None:
    user = _user(db_session, "user")
    admin = _user(db_session, "admin", user_type=UserType.ADMIN)
    created = service.create_request(db_session, _actor(user), _payload())
    service.update_request(db_session, _actor(admin), created.id, DataRequestUpdate(status="RETURNED"))
    url = blob_store.put(b"%PDF-1.4", "uploads/requests/private/1", filename="extract.pdf", content_type="application/pdf")
    stored = db_session.get(DataRequest, created.id)
    assert stored is not None
    service.store.update(db_session, created.id, expected_version=stored.row_version, changes={"generated_file": url}, user_id=None)

    resubmitted = service.update_request(db_session, _actor(user), created.id, DataRequestUpdate(purpose="TEACHING"))

    assert resubmitted.status == "SUBMITTED"
    reloaded = db_session.get(DataRequest, created.id, populate_existing=True)
    assert reloaded is not None and reloaded.generated_file is None
    assert blob_store.stat(blob_store.path_from_url(url)) is None


def test_regenerate_pdf_requires_admin_and_restarts_pipeline(
    db_session: Session,
    service: DataRequestService,
    queue: RecordingQueue,
    blob_store: LocalBlobStore,
) -> None:
    user = _user(db_session, "user")
    admin = _user(db_session, "admin", user_type=UserType.ADMIN)
    created = service.create_request(db_session, _actor(admin), _payload(objects=[{"id": "10010001"}]))
    url = blob_store.put(b"%PDF-1.4", "uploads/requests/private/1", filename="extract.pdf", content_type="application/pdf")
    service.save_generated_file(db_session, created.id, url)

    with pytest.raises(WorkflowAuthorizationError):
        service.regenerate_pdf(db_session, _actor(user), created.id)

    result = service.regenerate_pdf(db_session, _actor(admin), created.id)

    assert result.generating is True
    assert result.job_id == "flow-2"
    reloaded = db_session.get(DataRequest, created.id, populate_existing=True)
    assert reloaded is not None and reloaded.generated_file is None
    assert blob_store.stat(blob_store.path_from_url(url)) is None


def test_generate_requires_approved_request(db_session: Session, service: DataRequestService) -> None:
    user = _user(db_session, "user")
    created = service.create_request(db_session, _actor(user), _payload())

    with pytest.raises(WorkflowValidationError):
        service.generate(db_session, _actor(user), created.id)


def test_render_html_is_gated_by_secret(db_session: Session, service: DataRequestService) -> None:
    admin = _user(db_session, "admin", user_type=UserType.ADMIN)
    created = service.create_request(db_session, _actor(admin), _payload())
    stored = db_session.get(DataRequest, created.id)
    assert stored is not None

    with pytest.raises(EntityNotFoundError):
        service.render_html(db_session, created.id, "wrong")
    with pytest.raises(EntityNotFoundError):
        service.render_html(db_session, created.id, None)

    html = service.render_html(db_session, created.id, get_request_secret(stored.id, stored.created_at))
    assert "Lake 10010001" in html
    assert "Lake 10010002" in html
    assert "12.5" in html
    assert "screenshot-placeholder" in html


def test_geometry_is_exposed_as_feature_collection(db_session: Session, service: DataRequestService) -> None:
    user = _user(db_session, "user")
    created = service.create_request(
        db_session,
        _actor(user),
        _payload(geom={"type": "Point", "coordinates": [500000.0, 6100000.0]}),
    )

    collection = service.get_geom(db_session, created.id)

    assert collection["type"] == "FeatureCollection"
    assert collection["features"][0]["properties"]["id"] == created.id
    assert collection["features"][0]["geometry"]["type"] == "Point"
