from __future__ import annotations

from datetime import datetime
from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

_env: Environment | None = None


def _format_date(value: datetime | str | None, fmt: str = "%Y-%m-%d") -> str:
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    return value.strftime(fmt)


def _round_number(value: float | int | None, digits: int = 2) -> str:
    if value is None:
        return "-"
    return f"{round(float(value), digits):g}"


def get_environment() -> Environment:
    global _env
    if _env is None:
        _env = Environment(
            loader=PackageLoader("app.documents", "templates"),
            autoescape=select_autoescape(["html"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        _env.filters["format_date"] = _format_date
        _env.filters["round_number"] = _round_number
    return _env


def render_request_html(context: dict[str, Any]) -> str:
    return get_environment().get_template("request.html").render(**context)
