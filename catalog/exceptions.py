"""
Exception hierarchy for catalog operations.

Every error carries the HTTP status code the API reports it with, a
user-facing message and an optional context dict that is logged but never
returned to the client.

    CatalogError (500)
    ├── ValidationError          400  missing field, unknown reference, bad upload
    ├── NotFoundError            404  requested document does not exist
    ├── ConflictError            409  deletion blocked by existing references
    ├── StorageError             500  cover image could not be written
    ├── OperationError           500  unexpected failure inside a handler
    └── ServiceUnavailableError  503  database handle not initialised
"""

from typing import Any, Dict, Optional


class CatalogError(Exception):
    """Base exception for all catalog errors."""

    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CatalogError):
    """Client input is missing, malformed or points at unknown documents."""

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(CatalogError):
    """The requested document does not exist."""

    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=f"{resource} not found", context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(CatalogError):
    """The operation would leave other documents pointing at nothing."""

    status_code = 409


class StorageError(CatalogError):
    """A cover image could not be written to disk."""

    def __init__(
        self,
        message: str = "Failed to store the uploaded file",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class OperationError(CatalogError):
    """
    Wraps an unexpected exception raised while serving a request.

    ``message`` names the operation ("Error creating book"); ``detail`` holds
    the original exception text, shown to clients outside production only.
    """

    def __init__(
        self,
        message: str,
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
        self.detail = detail


class ServiceUnavailableError(CatalogError):
    """The database handle has not been initialised."""

    status_code = 503

    def __init__(self, message: str = "Database service not available"):
        super().__init__(message=message)
