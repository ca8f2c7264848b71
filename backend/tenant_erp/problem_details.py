"""RFC 7807 Problem Details helpers."""
from __future__ import annotations

from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .domain_errors import DomainError


def build_problem_details_response(exc: DomainError) -> JSONResponse:
    """Render DomainError as RFC 7807 payload with stable domain code."""
    try:
        title = HTTPStatus(exc.http_status).phrase
    except ValueError:
        title = "Domain Error"

    payload: dict[str, object] = {
        "type": f"https://api.tenant-erp.local/problems/{exc.code.lower()}",
        "title": title,
        "status": exc.http_status,
        "detail": exc.message,
        "code": exc.code,
        "kind": exc.kind,
    }
    if exc.details is not None:
        payload["details"] = exc.details

    headers: dict[str, str] = {}
    retry_after = (exc.details or {}).get("retry_after_seconds")
    if retry_after is not None:
        headers["Retry-After"] = str(int(retry_after))
    if exc.http_status == 401:
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=exc.http_status,
        content=payload,
        media_type="application/problem+json",
        headers=headers or None,
    )


async def _handle_domain_error(_: Request, exc: DomainError) -> JSONResponse:
    return build_problem_details_response(exc)


def install_problem_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _handle_domain_error)
