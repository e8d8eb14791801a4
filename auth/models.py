"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the engine
do the work; these only own the shape.

All datetimes are timezone-aware UTC.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLES: tuple[str, ...] = ("admin", "operator", "auditor")
DEFAULT_ROLE = "operator"


@dataclass
class User:
    """An identity record owned by the credential store.

    email is stored lower-cased and trimmed; every lookup normalizes the same
    way, which is what makes the uniqueness check case-insensitive.

    hashed_password is the bcrypt output. It never leaves the auth package --
    callers outside it receive PublicUser instead.

    version is an advisory counter bumped by UserStore.update_user(). The
    engine never reads it.
    """

    email: str
    display_name: str
    hashed_password: str
    role: str = DEFAULT_ROLE  # "admin", "operator", "auditor"
    id: int | None = None
    is_active: bool = True
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0


@dataclass(frozen=True)
class PublicUser:
    """The outward view of a User: no password hash, no version."""

    id: int
    email: str
    display_name: str
    role: str
    is_active: bool
    last_login: datetime | None
    created_at: datetime | None


@dataclass(frozen=True)
class RefreshToken:
    """One outstanding session grant.

    Immutable once issued. Rotation deletes the record and inserts a new one;
    there is no in-place update.
    """

    token: str
    user_id: int
    expires_at: datetime
    issued_at: datetime


@dataclass(frozen=True)
class AccessClaims:
    """Verified contents of an access token."""

    user_id: int
    email: str
    role: str
    expires_at: datetime
    jti: str


@dataclass(frozen=True)
class RefreshClaims:
    """Verified contents of a refresh token."""

    user_id: int
    expires_at: datetime
    jti: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AuthResult:
    """Returned by register() and login()."""

    user: PublicUser
    access_token: str
    refresh_token: str
