"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DashboardError(Exception):
    """Base exception with HTTP status code and optional details."""

    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class ValidationError(DashboardError):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=400, details=details)


class NotFoundError(DashboardError):
    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class ConfigurationError(DashboardError):
    """A provider credential is missing."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class UpstreamError(DashboardError):
    """Provider returned non-2xx, or the call failed or timed out."""

    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message, status_code=500)
        self.upstream_status = upstream_status


class NoUpstreamDataError(DashboardError):
    """Every source of a fan-out failed."""

    def __init__(self, message: str):
        super().__init__(message, status_code=503)


class PersistenceError(DashboardError):
    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class RateLimitExceededError(DashboardError):
    def __init__(self, message: str = "Too many requests"):
        super().__init__(message, status_code=429)


def error_body(message: str, details: dict | None = None) -> dict:
    body: dict = {"error": message}
    if details:
        body["details"] = details
    return body


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(DashboardError)
    async def handle_dashboard_error(request: Request, exc: DashboardError):
        if exc.status_code >= 500:
            logger.exception(
                "%s on %s %s: %s",
                type(exc).__name__,
                request.url.path,
                dict(request.query_params),
                exc,
                exc_info=exc,
            )
        else:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(error_body(str(exc), exc.details), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_request: Request, exc: RequestValidationError):
        return JSONResponse(
            error_body("Invalid parameters", {"errors": jsonable_encoder(exc.errors())}),
            status_code=400,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s: %s", request.url.path, exc)
        return JSONResponse(
            {"error": "Internal server error"},
            status_code=500,
        )
