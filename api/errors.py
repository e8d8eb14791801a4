"""
api/errors.py -- Map engine failures to HTTP responses.

One table, one lookup. Every AuthError subclass the engine can raise has an
explicit row; the lookup walks the exception's MRO so TokenReused lands on
the InvalidToken row. Anything that is not an AuthError never reaches this
module -- it falls through to the catch-all 500 handler in api/main.py.

Codes and messages come from the exception classes themselves. TokenReused
inherits InvalidToken's code, so a replayed refresh token and a forged one
produce byte-identical responses.
"""

from __future__ import annotations

import logging

from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse
from auth.errors import (
    AccountDisabled,
    AlreadyExists,
    AuthError,
    ExpiredToken,
    InvalidCredentials,
    InvalidToken,
    StorageFailure,
    ValidationFailed,
)

logger = logging.getLogger("authcore.api")

STATUS_BY_ERROR: dict[type[AuthError], int] = {
    AlreadyExists: 409,
    InvalidCredentials: 401,
    AccountDisabled: 403,
    InvalidToken: 401,
    ExpiredToken: 401,
    StorageFailure: 503,
    ValidationFailed: 422,
}

# Unlisted AuthError subclasses. Should not happen; treated as a server bug.
_FALLBACK_STATUS = 500


def status_for(exc: AuthError) -> int:
    for cls in type(exc).__mro__:
        status = STATUS_BY_ERROR.get(cls)
        if status is not None:
            return status
    return _FALLBACK_STATUS


def auth_error_response(exc: AuthError) -> JSONResponse:
    """Build the error envelope for an engine failure."""
    status = status_for(exc)
    if status >= 500:
        logger.error("Auth engine failure: %s", exc.code, exc_info=exc)
    error = ErrorDetail(code=exc.code, message=exc.message)
    response = JSONResponse(status_code=status, content=ErrorResponse(error=error).model_dump())
    if status == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    response.headers["Cache-Control"] = "no-store"
    return response
