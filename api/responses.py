"""
Helpers building the success/failure envelope returned by every endpoint.
"""

from typing import Any, Optional

from fastapi.responses import JSONResponse

from api.models import APIResponse, serialize


def envelope(
    success: bool,
    status_code: int = 200,
    data: Any = None,
    count: Optional[int] = None,
    message: Optional[str] = None,
    error: Optional[str] = None,
) -> JSONResponse:
    """Return a JSONResponse with the envelope; top-level keys that are None are dropped."""
    body = APIResponse(
        success=success,
        data=serialize(data),
        count=count,
        message=message,
        error=error,
    )
    content = {key: value for key, value in body.model_dump(mode="json").items() if value is not None}
    return JSONResponse(status_code=status_code, content=content)


def success_response(
    data: Any = None,
    status_code: int = 200,
    count: Optional[int] = None,
    message: Optional[str] = None,
) -> JSONResponse:
    return envelope(True, status_code=status_code, data=data, count=count, message=message)


def error_response(status_code: int, message: str, error: Optional[str] = None) -> JSONResponse:
    return envelope(False, status_code=status_code, message=message, error=error)
