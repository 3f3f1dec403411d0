"""
Mapping of lending errors onto HTTP responses
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..exceptions import (
    ConfigurationError, ConflictError, LendingError, LoanNotFound, PaymentNotFound,
    PrerequisiteNotMet, StorageError, ValidationError,
)
from ..logging_config import get_logger


logger = get_logger("coop_lending.api")

# Most specific first
_STATUS_BY_TYPE = (
    (ValidationError, 422),
    (PrerequisiteNotMet, 403),
    (ConflictError, 409),
    (LoanNotFound, 404),
    (PaymentNotFound, 404),
    (StorageError, 503),
    (ConfigurationError, 500),
)


def status_for_error(error: LendingError) -> int:
    for error_type, status_code in _STATUS_BY_TYPE:
        if isinstance(error, error_type):
            return status_code
    return 400


def status_for_code(code: str) -> int:
    """HTTP status for an error code carried by a rejected TransitionResult"""
    for error_type, status_code in _STATUS_BY_TYPE:
        if any(cls.code == code for cls in _with_subclasses(error_type)):
            return status_code
    return 400


def _with_subclasses(cls):
    yield cls
    for sub in cls.__subclasses__():
        yield from _with_subclasses(sub)


async def lending_error_handler(request: Request, exc: LendingError) -> JSONResponse:
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.code,
            "detail": exc.message,
            "retryable": getattr(exc, "retryable", False),
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LendingError, lending_error_handler)
