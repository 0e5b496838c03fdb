from __future__ import annotations

import base64
import hashlib
import json
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.data_requests.models import DataRequest, RequestObjectType
from app.data_requests.repository import DataRequestStore
from app.documents.render import render_request_html
from app.documents.secrets import get_request_secret
from app.platform.objects import WaterObjectClient, get_object_client
from app.platform.storage import BlobStore, get_blob_store
from app.platform.tasks import TaskQueue, TaskSpec, get_task_queue
from app.platform.tools import ToolsClient, get_tools_client
from app.workflow.errors import DocumentPipelineError


logger = logging.getLogger("app.documents")

SAVE_SCREENSHOT_TASK = "app.documents.tasks.save_screenshot"
GENERATE_PDF_TASK = "app.documents.tasks.generate_and_save_pdf"
SCREENSHOT_FOLDER = "temp/screenshots"

GeneratedFileCallback = Callable[[Session, int, str], Any]


def object_hash(object_id: str) -> str:
    return hashlib.md5(f"item={object_id}".encode("utf-8")).hexdigest()


def requested_object_ids(request: DataRequest) -> list[str]:
    ids: list[str] = []
    for item in request.objects or []:
        if item.get("type", RequestObjectType.CADASTRAL_ID.value) != RequestObjectType.CADASTRAL_ID.value:
            continue
        object_id = str(item.get("id") or "").strip()
        if object_id and object_id not in ids:
            ids.append(object_id)
    return ids


def collect_screenshots(children_values: Iterable[Mapping[str, Any] | None], expected_hashes: Iterable[str]) -> dict[str, str]:
    """Key child results by content hash; every expected hash must be present."""
    screenshots: dict[str, str] = {}
    for value in children_values or []:
        if not value:
            continue
        item_hash = value.get("hash")
        url = value.get("url")
        if item_hash and url:
            screenshots[str(item_hash)] = str(url)

    missing = sorted(set(expected_hashes) - set(screenshots))
    if missing:
        raise DocumentPipelineError(f"Missing screenshots for {len(missing)} object(s): {', '.join(missing)}")
    return screenshots


def encode_screenshots(screenshots: Mapping[str, str]) -> str:
    raw = json.dumps(dict(sorted(screenshots.items())), separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_screenshots(token: str) -> dict[str, str]:
    """Inverse of :func:`encode_screenshots`; raises ``ValueError`` on anything else."""
    try:
        value = json.loads(base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)))
    except (ValueError, UnicodeError) as exc:
        raise ValueError("Malformed screenshots parameter") from exc
    if not isinstance(value, dict):
        raise ValueError("Malformed screenshots parameter")
    return {str(key): url for key, url in value.items() if isinstance(url, str)}


def upload_folder(request: DataRequest) -> str:
    tenant_part = request.tenant_id or "private"
    user_part = request.created_by or "user"
    return f"uploads/requests/{tenant_part}/{user_part}"


@dataclass(frozen=True, slots=True)
class ScreenshotJob:
    object_id: str
    url: str
    hash: str


class DocumentPipeline:
    """Screenshot children feeding one PDF parent per request."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        blob_store: BlobStore | None = None,
        tools: ToolsClient | None = None,
        objects: WaterObjectClient | None = None,
        queue: TaskQueue | None = None,
        store: DataRequestStore | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._blob_store = blob_store
        self._tools = tools
        self._objects = objects
        self._queue = queue
        self.store = store or DataRequestStore()

    @property
    def blob_store(self) -> BlobStore:
        if self._blob_store is None:
            self._blob_store = get_blob_store(self.settings)
        return self._blob_store

    @property
    def tools(self) -> ToolsClient:
        if self._tools is None:
            self._tools = get_tools_client(self.settings)
        return self._tools

    @property
    def objects(self) -> WaterObjectClient:
        if self._objects is None:
            self._objects = get_object_client(self.settings)
        return self._objects

    @property
    def queue(self) -> TaskQueue:
        if self._queue is None:
            self._queue = get_task_queue()
        return self._queue

    def map_url(self, object_id: str) -> str:
        return f"{self.settings.maps_host.rstrip('/')}/uetk?item={object_id}"

    def screenshot_jobs(self, request: DataRequest) -> list[ScreenshotJob]:
        return [
            ScreenshotJob(object_id=object_id, url=self.map_url(object_id), hash=object_hash(object_id))
            for object_id in requested_object_ids(request)
        ]

    def initiate(self, request: DataRequest) -> str:
        jobs = self.screenshot_jobs(request)
        job_id = self.queue.enqueue_flow(
            TaskSpec(GENERATE_PDF_TASK, kwargs={"request_id": request.id}),
            [TaskSpec(SAVE_SCREENSHOT_TASK, kwargs={"url": job.url, "hash": job.hash}) for job in jobs],
        )
        logger.info(
            "document.generation_started",
            extra={"entity_type": "request", "entity_id": request.id, "job_id": job_id, "status": f"children={len(jobs)}"},
        )
        return job_id

    def screenshot_path(self, item_hash: str) -> str:
        return f"{SCREENSHOT_FOLDER}/{item_hash}.jpeg"

    def _fresh(self, path: str) -> bool:
        stat = self.blob_store.stat(path)
        if stat is None or stat.size <= 0:
            return False
        max_age = timedelta(days=self.settings.screenshot_cache_days)
        modified_at = stat.modified_at
        if modified_at.tzinfo is None:
            modified_at = modified_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) - modified_at < max_age

    def save_screenshot(self, url: str, item_hash: str) -> dict[str, str]:
        path = self.screenshot_path(item_hash)
        if self._fresh(path):
            logger.info("document.screenshot_cached", extra={"path": path, "status": "cached"})
            return {"hash": item_hash, "url": self.blob_store.url_for(path)}

        data = self.tools.screenshot(url)
        self.blob_store.put(data, SCREENSHOT_FOLDER, filename=f"{item_hash}.jpeg", content_type="image/jpeg")
        stat = self.blob_store.stat(path)
        if stat is None or stat.size <= 0:
            raise DocumentPipelineError("Screenshot is empty")
        logger.info("document.screenshot_saved", extra={"path": path, "status": "saved"})
        return {"hash": item_hash, "url": self.blob_store.url_for(path)}

    def cached_screenshots(self, request: DataRequest) -> dict[str, str]:
        screenshots: dict[str, str] = {}
        for job in self.screenshot_jobs(request):
            path = self.screenshot_path(job.hash)
            if self._fresh(path):
                screenshots[job.hash] = self.blob_store.url_for(path)
        return screenshots

    def render_screenshots(self, request: DataRequest, token: str | None) -> dict[str, str]:
        """Screenshots for the extract page: the map the PDF job aggregated, else a fresh-cache preview."""
        if not token:
            return self.cached_screenshots(request)
        expected = {job.hash for job in self.screenshot_jobs(request)}
        return {item_hash: url for item_hash, url in decode_screenshots(token).items() if item_hash in expected}

    def render_context(self, request: DataRequest, screenshots: Mapping[str, str]) -> dict[str, Any]:
        found = self.objects.find_by_cadastral_ids(requested_object_ids(request))
        objects = [
            {
                "cadastral_id": item.cadastral_id,
                "name": item.name,
                "category": item.category,
                "municipality": item.municipality,
                "area": item.area,
                "length": item.length,
                "extra": item.extra,
                "hash": object_hash(item.cadastral_id),
                "screenshot": screenshots.get(object_hash(item.cadastral_id), ""),
            }
            for item in found
        ]
        return {
            "request": {"id": request.id, "date": request.created_at, "purpose": request.purpose},
            "objects": objects,
            "full_data": bool((request.data or {}).get("extended")),
        }

    def render_html(self, request: DataRequest, screenshots: Mapping[str, str]) -> str:
        return render_request_html(self.render_context(request, screenshots))

    def html_url(self, request: DataRequest, screenshots: Mapping[str, str] | None = None) -> str:
        params = {"secret": get_request_secret(request.id, request.created_at)}
        if screenshots:
            params["screenshots"] = encode_screenshots(screenshots)
        return f"{self.settings.public_api_host.rstrip('/')}/requests/{request.id}/html?{urlencode(params)}"

    def generate_pdf(
        self,
        session: Session,
        request_id: int,
        children_values: Iterable[Mapping[str, Any] | None],
        *,
        on_generated: GeneratedFileCallback,
    ) -> str:
        """Render, store and record the PDF for ``request_id``; raises when any screenshot is missing."""
        request = self.store.find_one(session, request_id)
        if request is None:
            raise DocumentPipelineError(f"Request {request_id} not found")

        expected = {job.hash for job in self.screenshot_jobs(request)}
        screenshots = collect_screenshots(children_values, expected)
        logger.info(
            "document.screenshots_collected",
            extra={"entity_type": "request", "entity_id": request_id, "status": f"screenshots={len(screenshots)}"},
        )

        pdf = self.tools.pdf(self.html_url(request, screenshots))
        if not pdf:
            raise DocumentPipelineError("Generated PDF is empty")

        url = self.blob_store.put(
            pdf,
            upload_folder(request),
            filename=f"extract-{request.id}.pdf",
            content_type="application/pdf",
        )
        on_generated(session, request.id, url)
        logger.info("document.rendered", extra={"entity_type": "request", "entity_id": request_id, "status": "stored"})
        return url

    def discard(self, generated_file: str) -> None:
        path = self.blob_store.path_from_url(generated_file)
        if not self.blob_store.remove(path):
            logger.warning("document.discard_missing", extra={"path": path, "status": "missing"})


_pipeline: DocumentPipeline | None = None


def get_document_pipeline() -> DocumentPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = DocumentPipeline()
    return _pipeline
