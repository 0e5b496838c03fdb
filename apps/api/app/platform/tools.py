from __future__ import annotations

import httpx

from app.core.config import Settings, get_settings

PDF_PAGE = {"height": 877, "width": 620, "margin": 50}


class ToolsClient:
    """HTTP client for the internal screenshot / PDF rendering service."""

    def __init__(self, host: str, *, timeout: float = 120.0, transport: httpx.BaseTransport | None = None) -> None:
        self.host = host.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.host, timeout=self.timeout, transport=self.transport)

    def screenshot(self, url: str, *, wait_for: str | None = None) -> bytes:
        params = {"quality": "75", "url": url, "type": "jpeg", "encoding": "binary"}
        if wait_for:
            params["waitFor"] = wait_for
        with self._client() as client:
            resp = client.get("/screenshot", params=params)
            resp.raise_for_status()
            return resp.content

    def pdf(self, url: str, *, header: str | None = None, footer: str | None = None) -> bytes:
        payload: dict[str, object] = {
            "url": url,
            "height": PDF_PAGE["height"],
            "width": PDF_PAGE["width"],
            "margin": {
                "top": PDF_PAGE["margin"],
                "bottom": PDF_PAGE["margin"],
                "left": PDF_PAGE["margin"],
                "right": PDF_PAGE["margin"],
            },
        }
        if header:
            payload["header"] = header
        if footer:
            payload["footer"] = footer
        with self._client() as client:
            resp = client.post("/pdf", json=payload)
            resp.raise_for_status()
            return resp.content


def get_tools_client(settings: Settings | None = None) -> ToolsClient:
    settings = settings or get_settings()
    return ToolsClient(settings.tools_host)
