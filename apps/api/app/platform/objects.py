from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.config import Settings, get_settings


@dataclass(frozen=True, slots=True)
class WaterObject:
    """A registered water-body object as published by the GIS server."""

    cadastral_id: str
    name: str = ""
    category: str = ""
    municipality: str = ""
    area: float | None = None
    length: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def _as_float(value: Any) -> float | None:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


class WaterObjectClient:
    """Looks water-body objects up by cadastral id through the QGIS WFS endpoint."""

    layer = "uetk_merged"

    def __init__(self, host: str, *, timeout: float = 30.0, transport: httpx.BaseTransport | None = None) -> None:
        self.host = host.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def find_by_cadastral_ids(self, cadastral_ids: Sequence[str]) -> list[WaterObject]:
        ids = [str(item) for item in cadastral_ids if str(item).strip()]
        if not ids:
            return []
        quoted = ",".join(f"'{item.replace(chr(39), '')}'" for item in ids)
        params = {
            "SERVICE": "WFS",
            "REQUEST": "GetFeature",
            "TYPENAME": self.layer,
            "OUTPUTFORMAT": "application/json",
            "EXP_FILTER": f'"kadastro_id" IN ({quoted})',
        }
        with httpx.Client(base_url=self.host, timeout=self.timeout, transport=self.transport) as client:
            resp = client.get("/qgisserver/uetk_public", params=params)
            resp.raise_for_status()
            payload = resp.json()

        found: dict[str, WaterObject] = {}
        for feature in payload.get("features") or []:
            props = feature.get("properties") or {}
            cadastral_id = str(props.get("kadastro_id") or "")
            if not cadastral_id:
                continue
            found[cadastral_id] = WaterObject(
                cadastral_id=cadastral_id,
                name=str(props.get("pavadinimas") or ""),
                category=str(props.get("kategorija") or ""),
                municipality=str(props.get("savivaldybe") or ""),
                area=_as_float(props.get("plotas")),
                length=_as_float(props.get("ilgis")),
                extra=props,
            )
        return [found.get(item) or WaterObject(cadastral_id=item) for item in ids]


def get_object_client(settings: Settings | None = None) -> WaterObjectClient:
    settings = settings or get_settings()
    return WaterObjectClient(settings.qgis_server_host, timeout=settings.http_timeout_seconds)
