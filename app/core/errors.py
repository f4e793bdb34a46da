from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base for failures that map onto a structured JSON error response."""

    status_code = 500
    code = "internal_server_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationError(ServiceError):
    status_code = 400
    code = "bad_request"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class ServiceConfigurationError(ServiceError):
    status_code = 503
    code = "service_unavailable"


class UpstreamError(ServiceError):
    status_code = 500
    code = "upstream_error"


class PersistenceError(ServiceError):
    status_code = 500
    code = "persistence_error"


def _default_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        429: "rate_limited",
        503: "service_unavailable",
    }
    return mapping.get(status_code, "http_error")


def _default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def _build_response(
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    payload: dict[str, Any] = {"error": message, "code": code}
    if details not in (None, {}, []):
        payload["details"] = details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return _build_response(exc.status_code, exc.code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    message = _default_message(exc.status_code)
    details: Any = None
    if isinstance(detail, str) and detail:
        message = detail
    elif isinstance(detail, dict):
        message = detail.get("error") or detail.get("message") or message
        details = detail.get("details")
    response = _build_response(exc.status_code, _default_code(exc.status_code), message, details)
    headers = getattr(exc, "headers", None)
    if headers:
        response.headers.update(headers)
    return response


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = []
    for error in exc.errors():
        loc = error.get("loc") or []
        # Drop the request section (body/query/path) from the location
        field = ".".join(str(part) for part in loc if part not in {"body", "query", "path"})
        errors.append({"field": field or None, "message": error.get("msg"), "type": error.get("type")})
    return _build_response(
        status_code=400,
        code="validation_error",
        message="Invalid request",
        details={"errors": errors},
    )


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = _build_response(
        status_code=429,
        code="rate_limited",
        message="Too many requests. Please try again later.",
        details={"limit": getattr(exc, "detail", None)},
    )
    headers = getattr(exc, "headers", None)
    if isinstance(headers, dict):
        response.headers.update(headers)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _build_response(
        status_code=500,
        code="internal_server_error",
        message="Internal server error",
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
