"""
auth/service.py -- The authentication and session lifecycle engine.

AuthService is the sole entry point for the six operations exposed to the
transport layer:

  register(email, password, display_name, role=None)  -> AuthResult
  login(email, password)                               -> AuthResult
  refresh(refresh_token)                               -> TokenPair
  logout(refresh_token)                                -> None
  logout_all(user_id)                                  -> int
  verify_access_token(token)                           -> AccessClaims

plus get_profile(user_id) for GET /auth/me and create_user(...) for the admin CLI
(register without opening a session).

Every operation returns a plain value or raises one AuthError subclass
(auth/errors.py). The engine never retries and never logs-and-swallows: a
store failure becomes StorageFailure, chained to the original exception.

The engine holds no mutable state of its own. All state lives in the
credential store and the session store, so one instance can serve any number
of concurrent requests.

Refresh rotation:
  1. verify signature/expiry            -> InvalidToken / ExpiredToken
  2. find the session record            -> missing: TokenReused
  3. delete it; only a count of 1 wins  -> 0: TokenReused
  4. reload the user                    -> missing/inactive: InvalidToken
  5. issue and persist a new pair

Step 3 is the single-use gate. Two callers racing with the same token can
both pass step 2; the store's atomic delete lets exactly one of them through.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from auth.errors import (
    AccountDisabled,
    AlreadyExists,
    Conflict,
    ExpiredToken,
    InvalidCredentials,
    InvalidToken,
    StorageFailure,
    StoreError,
    TokenReused,
    ValidationFailed,
)
from auth.models import (
    DEFAULT_ROLE,
    ROLES,
    AccessClaims,
    AuthResult,
    PublicUser,
    RefreshToken,
    TokenPair,
    User,
)
from auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher
from auth.tokens import TokenCodec
from core.clock import Clock

logger = logging.getLogger("authcore.auth")

_EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")
MIN_PASSWORD_LENGTH = 8
DISPLAY_NAME_MIN = 2
DISPLAY_NAME_MAX = 50


class CredentialStore(Protocol):
    def create_user(self, user: User) -> int: ...
    def get_by_email(self, email: str) -> User | None: ...
    def get_by_id(self, user_id: int) -> User | None: ...
    def update_last_login(self, user_id: int, when: datetime) -> bool: ...


class SessionRepository(Protocol):
    def put(self, token: str, user_id: int, expires_at: datetime, issued_at: datetime | None = None) -> None: ...
    def find_by_value(self, token: str) -> RefreshToken | None: ...
    def delete_by_value(self, token: str) -> int: ...
    def delete_all_by_user(self, user_id: int) -> int: ...


@contextmanager
def _storage(action: str) -> Iterator[None]:
    """Surface any store failure not handled inside the block as StorageFailure."""
    try:
        yield
    except StoreError as exc:
        raise StorageFailure(f"Store error during {action}.") from exc


class AuthService:
    def __init__(
        self,
        users: CredentialStore,
        sessions: SessionRepository,
        hasher: PasswordHasher,
        codec: TokenCodec,
        clock: Clock | None = None,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.hasher = hasher
        self.codec = codec
        # Share the codec's clock by default so stored expiry and token
        # expiry are computed from the same time source.
        self.clock = clock or codec.clock

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, display_name: str, role: str | None = None) -> AuthResult:
        """Create a user and open their first session."""
        user = self.create_user(email, password, display_name, role)
        pair = self._open_session(user)
        logger.info("User registered (user_id=%s role=%s)", user.id, user.role)
        return AuthResult(user=_public(user), access_token=pair.access_token, refresh_token=pair.refresh_token)

    def create_user(self, email: str, password: str, display_name: str, role: str | None = None) -> User:
        """Validate, hash and persist a new user without opening a session.

        Raises ValidationFailed, AlreadyExists or StorageFailure.
        """
        email = _clean_email(email)
        _check_password(password, registering=True)
        display_name = _clean_display_name(display_name)
        role = role or DEFAULT_ROLE
        if role not in ROLES:
            raise ValidationFailed(f"Role must be one of: {', '.join(ROLES)}.")

        with _storage("create_user"):
            if self.users.get_by_email(email) is not None:
                raise AlreadyExists()

        hashed = self.hasher.hash(password)

        with _storage("create_user"):
            try:
                user_id = self.users.create_user(
                    User(email=email, display_name=display_name, hashed_password=hashed, role=role)
                )
            except Conflict as exc:
                # Lost a race with a concurrent registration of the same email.
                raise AlreadyExists() from exc
            user = self.users.get_by_id(user_id)
        if user is None:
            raise StorageFailure("User not found after write.")
        return user

    def login(self, email: str, password: str) -> AuthResult:
        """Verify credentials and open a new session.

        Unknown email and wrong password raise the same InvalidCredentials,
        and both spend one bcrypt verification, so neither the error nor the
        response time reveals which emails are registered.
        """
        if not email or not password:
            raise ValidationFailed("Email and password are required.")
        # No stored password is longer than MAX_PASSWORD_BYTES, and bcrypt
        # would compare only a truncated prefix of a longer one.
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            self.hasher.verify_dummy(password[:MAX_PASSWORD_BYTES])
            logger.info("Login failed: password over %d bytes", MAX_PASSWORD_BYTES)
            raise InvalidCredentials()

        with _storage("login"):
            user = self.users.get_by_email(email)

        if user is None:
            self.hasher.verify_dummy(password)
            logger.info("Login failed: unknown email")
            raise InvalidCredentials()
        if not user.is_active:
            logger.info("Login refused: account disabled (user_id=%s)", user.id)
            raise AccountDisabled()
        if not self.hasher.verify(password, user.hashed_password):
            logger.info("Login failed: bad password (user_id=%s)", user.id)
            raise InvalidCredentials()

        now = self.clock.now()
        with _storage("login"):
            self.users.update_last_login(user.id, now)
        user = replace(user, last_login=now)

        pair = self._open_session(user)
        logger.info("User logged in (user_id=%s)", user.id)
        return AuthResult(user=_public(user), access_token=pair.access_token, refresh_token=pair.refresh_token)

    # ------------------------------------------------------------------
    # Refresh rotation
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new access/refresh pair.

        The presented token is consumed whether or not the later steps
        succeed; it can never be used again.
        """
        claims = self.codec.verify_refresh(refresh_token)

        with _storage("refresh"):
            record = self.sessions.find_by_value(refresh_token)
            if record is None:
                logger.warning("Refresh token not found or already used (user_id=%s)", claims.user_id)
                raise TokenReused()
            if self.sessions.delete_by_value(refresh_token) != 1:
                logger.warning("Refresh token consumed concurrently (user_id=%s)", claims.user_id)
                raise TokenReused()

        if record.user_id != claims.user_id:
            raise InvalidToken()
        if record.expires_at <= self.clock.now():
            raise ExpiredToken()

        with _storage("refresh"):
            user = self.users.get_by_id(claims.user_id)
        # Gone and disabled look the same here: no account-state oracle.
        if user is None or not user.is_active:
            raise InvalidToken()

        pair = self._open_session(user)
        logger.info("Refresh token rotated (user_id=%s)", user.id)
        return pair

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def logout(self, refresh_token: str) -> None:
        """Revoke one refresh token. Unknown or already-revoked tokens are not an error.

        Does not require the caller to be authenticated as the token's owner;
        possessing the token is enough to revoke it.
        """
        if not refresh_token:
            return
        with _storage("logout"):
            removed = self.sessions.delete_by_value(refresh_token)
        logger.info("Logout (sessions_removed=%d)", removed)

    def logout_all(self, user_id: int) -> int:
        """Revoke every refresh token owned by user_id. Returns how many were removed.

        The caller must already be authenticated as user_id; that check
        belongs to the request-authentication layer.
        """
        with _storage("logout_all"):
            removed = self.sessions.delete_all_by_user(user_id)
        logger.info("Logout from all devices (user_id=%s sessions_removed=%d)", user_id, removed)
        return removed

    # ------------------------------------------------------------------
    # Access tokens and profile
    # ------------------------------------------------------------------

    def verify_access_token(self, token: str) -> AccessClaims:
        return self.codec.verify_access(token)

    def get_profile(self, user_id: int) -> PublicUser:
        with _storage("get_profile"):
            user = self.users.get_by_id(user_id)
        if user is None or not user.is_active:
            raise InvalidToken()
        return _public(user)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open_session(self, user: User) -> TokenPair:
        now = self.clock.now()
        access_token = self.codec.issue_access(user)
        refresh_token = self.codec.issue_refresh(user)
        with _storage("session create"):
            try:
                self.sessions.put(refresh_token, user.id, now + self.codec.refresh_ttl, issued_at=now)
            except Conflict as exc:
                raise StorageFailure("Refresh token collided with an existing session.") from exc
        return TokenPair(access_token=access_token, refresh_token=refresh_token)


def _public(user: User) -> PublicUser:
    return PublicUser(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        is_active=user.is_active,
        last_login=user.last_login,
        created_at=user.created_at,
    )


def _clean_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationFailed("Please provide a valid email.")
    return email


def _check_password(password: str, registering: bool = False) -> None:
    if not password:
        raise ValidationFailed("Password is required.")
    if registering and len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationFailed(f"Password must not exceed {MAX_PASSWORD_BYTES} bytes.")


def _clean_display_name(display_name: str) -> str:
    display_name = (display_name or "").strip()
    if not DISPLAY_NAME_MIN <= len(display_name) <= DISPLAY_NAME_MAX:
        raise ValidationFailed(f"Name must be {DISPLAY_NAME_MIN}-{DISPLAY_NAME_MAX} characters.")
    return display_name
