"""Error Handlers

Maps engine exceptions to HTTP responses with a stable body:
``{"error": <code>, "message": <text>}``
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.exceptions import (
    AlreadyAssignedError,
    AlreadyResolvedError,
    ConflictError,
    IdempotencyKeyRequiredError,
    InsufficientFundsError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
    TaskEscrowException,
    ValidationError,
)

logger = structlog.get_logger()

# Most specific first: AlreadyAssigned/AlreadyResolved subclass InvalidState
STATUS_CODES: list[tuple[type[TaskEscrowException], int]] = [
    (AlreadyAssignedError, 409),
    (AlreadyResolvedError, 409),
    (InvalidStateError, 409),
    (ConflictError, 409),
    (ValidationError, 400),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (InsufficientFundsError, 402),
    (IdempotencyKeyRequiredError, 428),
    (RateLimitedError, 429),
    (InternalError, 500),
]


def status_code_for(exc: TaskEscrowException) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def handle_taskescrow_exception(request: Request, exc: TaskEscrowException) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.code, message=exc.message)
    elif not exc.benign:
        logger.info("request_rejected", path=request.url.path, error=exc.code, message=exc.message)

    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.window_minutes * 60)}
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "message": exc.message},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskEscrowException, handle_taskescrow_exception)
