"""Single mapping from RoadCalc errors to HTTP responses.

Routes never pick status codes for domain failures themselves; they let the
exception propagate and the handlers registered here translate it.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from roadcalc.errors import (
    ConstraintViolation,
    NotFoundError,
    RoadCalcError,
    TransactionFailure,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[RoadCalcError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    ConstraintViolation: 422,
    TransactionFailure: 503,
}


def status_for(exc: RoadCalcError) -> int:
    """Status code for an error, resolved through its class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


async def roadcalc_error_handler(request: Request, exc: RoadCalcError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)

    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error": type(exc).__name__,
            "retryable": exc.retryable,
        },
        headers=headers,
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed path, query or body values are input errors like any other."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "invalid request"
    return JSONResponse(
        status_code=ERROR_STATUS_CODES[ValidationError],
        content={"detail": message, "error": ValidationError.__name__, "retryable": False},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RoadCalcError, roadcalc_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
