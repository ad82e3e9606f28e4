from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import ORJSONResponse

from .settings import get_settings

PROBLEM_JSON = "application/problem+json"

_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    422: "Unprocessable Entity",
    503: "Service Unavailable",
}


def _default_title(status_code: int) -> str:
    if status_code in _TITLES:
        return _TITLES[status_code]
    return "Internal Server Error" if status_code >= 500 else "Error"


def problem_response(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    extensions: dict[str, Any] | None = None,
) -> ORJSONResponse:
    """RFC7807 body; 5xx details are withheld in production."""
    code = int(status_code)
    payload: dict[str, Any] = {
        "type": "about:blank",
        "title": title or _default_title(code),
        "status": code,
    }
    if detail and not (code >= 500 and get_settings().is_production):
        payload["detail"] = str(detail)

    path = str(getattr(request.url, "path", "") or "")
    if path:
        payload["instance"] = path

    rid = getattr(getattr(request, "state", None), "request_id", None) or request.headers.get("x-request-id")
    if rid:
        payload["requestId"] = str(rid)

    if extensions:
        payload["extensions"] = extensions

    return ORJSONResponse(status_code=code, content=payload, media_type=PROBLEM_JSON)
