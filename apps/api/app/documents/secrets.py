from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timezone


def _stamp(created_at: datetime) -> str:
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc)
    return created_at.strftime("%Y%m%d%H%M%S")


def get_request_secret(request_id: int, created_at: datetime) -> str:
    """Secret for the public pre-render page of one request; depends only on id and creation time."""
    return hashlib.md5(f"id={request_id}&date={_stamp(created_at)}".encode("utf-8")).hexdigest()


def verify_request_secret(request_id: int, created_at: datetime, secret: str | None) -> bool:
    if not secret:
        return False
    return hmac.compare_digest(get_request_secret(request_id, created_at), secret)
