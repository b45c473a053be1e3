"""Mapping of domain errors to HTTP responses."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..core.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    PreflightBlockedError,
    RatebookError,
    StateTransitionError,
    ValidationError,
)
from ..core.logging_utils import get_logger

logger = get_logger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[RatebookError], int], ...] = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StateTransitionError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (PreflightBlockedError, status.HTTP_409_CONFLICT),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
)


def status_for(exc: RatebookError) -> int:
    """HTTP status code of a domain error."""
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def ratebook_error_handler(request: Request, exc: RatebookError) -> JSONResponse:
    """Surface a domain error verbatim: kind, code, message and context."""
    code = status_for(exc)
    logger.info("%s %s -> %d %s", request.method, request.url.path, code, exc.code)
    return JSONResponse(status_code=code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    """Install the domain error handler on ``app``."""
    app.add_exception_handler(RatebookError, ratebook_error_handler)
