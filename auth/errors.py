"""
auth/errors.py -- Typed failures raised by the auth engine and its stores.

Two families:

  AuthError -- the engine's taxonomy. Every operation of AuthService either
      returns a success payload or raises exactly one of these. Each class
      carries a stable machine-readable `code`; the transport layer maps the
      class to a status (api/errors.py) and never inspects messages.

  StoreError -- raised by credential/session stores. Conflict is the only
      subclass the engine handles explicitly (duplicate unique key); any other
      StoreError becomes StorageFailure at the engine boundary.

TokenReused is a subclass of InvalidToken and deliberately reports the same
code: a replayed refresh token and one never issued by this system must look
identical to the caller. The distinct class exists only so the engine can log
the replay.

Layer rule: no imports from api/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every failure the auth engine reports to callers."""

    code: str = "auth_error"
    message: str = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class AlreadyExists(AuthError):
    code = "already_exists"
    message = "A user with this email already exists."


class InvalidCredentials(AuthError):
    """Unknown email or wrong password. One error for both, on purpose."""

    code = "invalid_credentials"
    message = "Invalid email or password."


class AccountDisabled(AuthError):
    code = "account_disabled"
    message = "Account is deactivated."


class InvalidToken(AuthError):
    code = "invalid_token"
    message = "Invalid token."


class TokenReused(InvalidToken):
    """A refresh token that is signed correctly but has no live session record."""


class ExpiredToken(AuthError):
    code = "expired_token"
    message = "Token has expired."


class StorageFailure(AuthError):
    code = "storage_failure"
    message = "The credential or session store is unavailable."


class ValidationFailed(AuthError):
    code = "validation_error"
    message = "Invalid input."


class StoreError(Exception):
    """A store could not complete an operation."""


class Conflict(StoreError):
    """A write collided with an existing unique key."""


__all__ = [
    "AuthError",
    "AlreadyExists",
    "InvalidCredentials",
    "AccountDisabled",
    "InvalidToken",
    "TokenReused",
    "ExpiredToken",
    "StorageFailure",
    "ValidationFailed",
    "StoreError",
    "Conflict",
]
