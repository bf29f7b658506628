"""Turn API error responses into short messages for Locust failures.

Two shapes reach the client:

- FastAPI request validation (422): {"detail": [{"loc": [...], "msg": "..."}]}
- Engine errors (400/403/404/409): {"error": {"kind": "...", "reason": "...", "messages": {...}}}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def extract_error_detail(response: Response) -> str:
    try:
        body = response.json()
    except ValueError:
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    if isinstance(body.get("detail"), list):
        parts = []
        for err in body["detail"]:
            loc = ".".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", str(err))
            parts.append(f"{loc}: {msg}" if loc else msg)
        return " | ".join(parts)

    error = body.get("error")
    if isinstance(error, dict):
        return f"{error.get('kind', 'error')}: {error.get('reason', '')}"
    if error is not None:
        return str(error)

    return str(body)[:300]


def error_kind(response: Response) -> str | None:
    try:
        error = response.json().get("error")
    except ValueError:
        return None
    return error.get("kind") if isinstance(error, dict) else None
