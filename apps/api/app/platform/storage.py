from __future__ import annotations

import logging
import mimetypes
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse

import boto3
from botocore.exceptions import ClientError

from app.core.config import Settings, get_settings


logger = logging.getLogger("app.storage")


def _safe_name(name: str) -> str:
    value = re.sub(r"[^a-zA-Z0-9._-]+", "-", (name or "file").strip())
    return value or "file"


def _object_key(folder: str, filename: str | None, content_type: str) -> str:
    if not filename:
        extension = mimetypes.guess_extension(content_type) or ".bin"
        filename = f"{uuid.uuid4().hex}{extension}"
    folder = folder.strip("/")
    name = _safe_name(filename)
    return f"{folder}/{name}" if folder else name


@dataclass(frozen=True, slots=True)
class BlobStat:
    path: str
    size: int
    modified_at: datetime


class BlobStore(Protocol):
    def put(self, data: bytes, folder: str, *, filename: str | None = None, content_type: str = "application/octet-stream") -> str:
        ...

    def stat(self, path: str) -> BlobStat | None:
        ...

    def remove(self, path: str) -> bool:
        ...

    def url_for(self, path: str) -> str:
        ...

    def path_from_url(self, url: str) -> str:
        ...


class LocalBlobStore:
    provider_type = "local"

    def __init__(self, base_path: str, public_url: str) -> None:
        self.base_path = Path(base_path)
        self.public_url = public_url.rstrip("/")

    def put(self, data: bytes, folder: str, *, filename: str | None = None, content_type: str = "application/octet-stream") -> str:
        key = _object_key(folder, filename, content_type)
        full_path = self.base_path / key
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_bytes(data)
        logger.info("blob.stored", extra={"path": key, "status": "stored"})
        return self.url_for(key)

    def stat(self, path: str) -> BlobStat | None:
        full_path = self.base_path / path.lstrip("/")
        if not full_path.is_file():
            return None
        info = full_path.stat()
        return BlobStat(
            path=path,
            size=info.st_size,
            modified_at=datetime.fromtimestamp(info.st_mtime, tz=timezone.utc),
        )

    def remove(self, path: str) -> bool:
        full_path = self.base_path / path.lstrip("/")
        if not full_path.is_file():
            return False
        full_path.unlink()
        return True

    def url_for(self, path: str) -> str:
        return f"{self.public_url}/{path.lstrip('/')}"

    def path_from_url(self, url: str) -> str:
        prefix = f"{self.public_url}/"
        if url.startswith(prefix):
            return url[len(prefix):]
        return urlparse(url).path.lstrip("/")


class S3BlobStore:
    """S3 / MinIO bucket addressed by path-style URLs ``{endpoint}/{bucket}/{key}``."""

    provider_type = "s3"

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        region: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client=None,  # type: ignore[no-untyped-def]
    ) -> None:
        if not bucket:
            raise RuntimeError("s3 bucket is required")
        self.bucket = bucket
        self.endpoint_url = (endpoint_url or f"https://s3.{region or 'us-east-1'}.amazonaws.com").rstrip("/")
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def put(self, data: bytes, folder: str, *, filename: str | None = None, content_type: str = "application/octet-stream") -> str:
        key = _object_key(folder, filename, content_type)
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        logger.info("blob.stored", extra={"path": key, "status": "stored"})
        return self.url_for(key)

    def stat(self, path: str) -> BlobStat | None:
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in {"404", "NoSuchKey", "NotFound"}:
                return None
            raise
        return BlobStat(path=path, size=int(head.get("ContentLength", 0)), modified_at=head["LastModified"])

    def remove(self, path: str) -> bool:
        self.client.delete_object(Bucket=self.bucket, Key=path)
        return True

    def url_for(self, path: str) -> str:
        return f"{self.endpoint_url}/{self.bucket}/{path.lstrip('/')}"

    def path_from_url(self, url: str) -> str:
        path = urlparse(url).path.lstrip("/")
        bucket_prefix = f"{self.bucket}/"
        if path.startswith(bucket_prefix):
            return path[len(bucket_prefix):]
        return path


def get_blob_store(settings: Settings | None = None) -> BlobStore:
    settings = settings or get_settings()
    backend = settings.blob_store_backend.lower()
    if backend == "s3":
        return S3BlobStore(
            settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
        )
    if backend == "local":
        return LocalBlobStore(settings.blob_local_path, settings.blob_public_url)
    raise ValueError(f"Unsupported blob store backend: {settings.blob_store_backend}")
