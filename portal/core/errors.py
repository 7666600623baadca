"""
Error handling - domain exceptions and FastAPI exception handlers.

Every error leaves the API as a JSON body of the form {"error": "<message>"}.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from portal.core.logging import get_logger

logger = get_logger(__name__)


class PortalError(Exception):
    """Base class for application errors."""


class ConfigurationError(PortalError):
    """Required configuration is missing or invalid."""


class SyncError(PortalError):
    """An ETL step failed. The underlying exception is chained."""

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"{step}: {message}")


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def add_error_handlers(app: FastAPI) -> None:
    """Register handlers rendering all errors as {"error": ...}."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(SyncError)
    async def sync_exception_handler(request: Request, exc: SyncError):
        logger.error("sync_failed", step=exc.step, error=str(exc), path=request.url.path)
        return JSONResponse(status_code=502, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path, method=request.method)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
