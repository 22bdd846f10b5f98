"""RFC 7807 exception handlers.

Every handler answers with a ``ProblemDetail`` body and echoes the trace ID
in the ``X-Trace-ID`` header so a failed upload or patch can be matched to
its log lines.
"""

import logging
from typing import Any, Optional, Sequence

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic_core import ValidationError as PydanticCoreValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from faxocr.api.schemas import ProblemDetail
from faxocr.core.middleware import TRACE_HEADER, ensure_trace_id
from faxocr.pipeline.core.exceptions import BaseError

logger = logging.getLogger(__name__)

_RETRYABLE_HTTP = {status.HTTP_429_TOO_MANY_REQUESTS, status.HTTP_503_SERVICE_UNAVAILABLE}


def _respond(request: Request, trace_id: str, **fields: Any) -> JSONResponse:
    problem = ProblemDetail(instance=request.url.path, trace_id=trace_id, **fields)
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        headers={TRACE_HEADER: trace_id},
    )


def _describe_first(errors: Sequence[dict], skip: Optional[str] = None) -> str:
    """Render the first pydantic error as ``field.path: message``."""
    if not errors:
        return "Validation failed"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != skip)
    msg = first.get("msg", "Validation failed")
    return f"{field}: {msg}" if field else msg


def _validation_problem(request: Request, trace_id: str, detail: str) -> JSONResponse:
    logger.warning(
        f"Validation error: {detail}",
        extra={"trace_id": trace_id, "error_code": "VALIDATION_ERROR"},
    )
    return _respond(
        request,
        trace_id,
        type="/errors/VALIDATION_ERROR",
        title="Request validation failed",
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=detail,
        code="VALIDATION_ERROR",
        category="client_error",
        retryable=False,
    )


async def handle_validation_error(request: Request, exc: RequestValidationError):
    """Malformed query, path, form or JSON body."""
    trace_id = ensure_trace_id(request)
    return _validation_problem(request, trace_id, _describe_first(exc.errors(), skip="body"))


async def handle_pydantic_error(request: Request, exc: PydanticCoreValidationError):
    """Model validation failing inside a route, e.g. an item patch."""
    trace_id = ensure_trace_id(request)
    return _validation_problem(request, trace_id, _describe_first(exc.errors()))


async def handle_app_error(request: Request, exc: BaseError):
    """Pipeline errors carry their own code, category and status."""
    trace_id = ensure_trace_id(request)
    server_side = exc.http_status >= 500

    log = logger.error if server_side else logger.warning
    log(
        f"Application error: {exc.message}",
        extra={
            "trace_id": trace_id,
            "error_code": exc.error_code,
            "http_status": exc.http_status,
        },
        exc_info=server_side,
    )
    return _respond(request, trace_id, **exc.to_dict())


async def handle_http_error(request: Request, exc: StarletteHTTPException):
    """Routing errors and explicit HTTPExceptions (unknown route, pipeline unavailable)."""
    trace_id = ensure_trace_id(request)
    code = f"HTTP_{exc.status_code}"

    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={"trace_id": trace_id, "http_status": exc.status_code},
    )
    return _respond(
        request,
        trace_id,
        type=f"/errors/{code}",
        title=str(exc.detail),
        status=exc.status_code,
        detail=str(exc.detail),
        code=code,
        category="server_error" if exc.status_code >= 500 else "client_error",
        retryable=exc.status_code in _RETRYABLE_HTTP,
    )


async def handle_unknown_error(request: Request, exc: Exception):
    trace_id = ensure_trace_id(request)

    logger.exception(
        "Unexpected error occurred",
        extra={"trace_id": trace_id, "error_code": "INTERNAL_SERVER_ERROR"},
    )
    return _respond(
        request,
        trace_id,
        type="/errors/INTERNAL_SERVER_ERROR",
        title="Internal server error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred. Please report the trace ID.",
        code="INTERNAL_SERVER_ERROR",
        category="server_error",
        retryable=False,
    )
