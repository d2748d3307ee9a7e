"""
Exception handlers turning errors into the failure envelope.

    CatalogError subclasses  → their status_code
    RequestValidationError   → 400
    HTTPException            → its status code (404 becomes "Route not found")
    Exception                → 500
"""

from contextlib import contextmanager
from typing import Iterator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.responses import error_response
from catalog.exceptions import CatalogError, OperationError
from utilities.config import config

logger = structlog.get_logger(__name__)


@contextmanager
def wrap_errors(message: str, **context) -> Iterator[None]:
    """
    Let catalog errors through and wrap anything else in an OperationError.

    ``message`` names the operation and becomes the envelope message of the
    resulting 500 response.
    """
    try:
        yield
    except CatalogError:
        raise
    except Exception as e:
        logger.error(message, error=str(e), **context, exc_info=True)
        raise OperationError(message, detail=str(e), context=context) from e


def _error_detail(detail: str) -> str:
    return "Internal server error" if config.is_production() else detail


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope-producing handlers to the application."""

    @app.exception_handler(CatalogError)
    async def handle_catalog_error(request: Request, exc: CatalogError):
        if exc.status_code >= 500:
            logger.error("Request failed", path=request.url.path, error=exc.message, context=exc.context)
        else:
            logger.warning("Request rejected", path=request.url.path, status=exc.status_code, error=exc.message)

        error = None
        if isinstance(exc, OperationError) and exc.detail:
            error = _error_detail(exc.detail)
        return error_response(exc.status_code, exc.message, error=error)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg") if errors else None
        logger.warning("Invalid request", path=request.url.path, errors=len(errors))
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request body", error=detail)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return error_response(exc.status_code, "Route not found")
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Something went wrong!",
            error=_error_detail(str(exc)),
        )
