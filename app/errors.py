"""API error types and the handlers that render them as envelopes."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from settings import Settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ApiError):
    """A required field is missing or holds an unusable value."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND


def error_body(error: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "error": error}
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


def _describe_validation_errors(exc: RequestValidationError) -> tuple[str, str]:
    errors = exc.errors()
    fields = sorted(
        {".".join(str(part) for part in err["loc"] if part != "body") or "body" for err in errors}
    )
    if any(err["type"] == "missing" for err in errors):
        summary = "Missing required fields"
    else:
        summary = "Invalid request payload"
    return summary, f"Check fields: {', '.join(fields)}"


def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    """Register envelope-shaped handlers for every failure path."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        logger.info(
            exc.message,
            extra={"path": request.url.path, "status": exc.status_code},
        )
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        summary, detail = _describe_validation_errors(exc)
        logger.warning(
            f"Validation error: {exc.errors()}",
            extra={"path": request.url.path, "status": status.HTTP_400_BAD_REQUEST},
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(summary, message=detail),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            content = error_body("Route not found", path=request.url.path)
        else:
            content = error_body(str(exc.detail))
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
        return internal_error_response(request, exc, settings)


def internal_error_response(request: Request, exc: Exception, settings: Settings) -> JSONResponse:
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=exc,
        extra={"path": request.url.path, "status": 500},
    )
    message = str(exc) if settings.is_development else None
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error", message=message),
    )


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    """Renders escaped exceptions as the 500 envelope.

    Installed as the innermost middleware so the outer layers (headers,
    CORS, access log) still see the response.
    """

    def __init__(self, app, *, settings: Settings):
        super().__init__(app)
        self.settings = settings

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return internal_error_response(request, exc, self.settings)
