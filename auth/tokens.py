"""
auth/tokens.py -- Signing and verification of access and refresh tokens.

Security design decisions:
  JWT: python-jose with HS256. Two independent secrets -- one for access
       tokens, one for refresh tokens -- so a leaked access-signing key cannot
       forge refresh tokens and vice versa. Each token also carries a "type"
       claim; a refresh token presented as an access token fails even if the
       two secrets were ever misconfigured to the same value.

  Lifetimes: access tokens live 15 minutes by default and have no server-side
       record, so they cannot be revoked early -- the short lifetime bounds the
       blast radius of a stolen one. Refresh tokens live 7 days and are tracked
       by the session store, so they can be revoked.

  jti: every token gets a random identifier. Without it two tokens issued to
       the same user within the same second would be byte-identical, and the
       session store's uniqueness constraint would reject the second login.

  Expiry: checked here against the injected Clock, not by python-jose against
       the wall clock (options={"verify_exp": False}). Signature problems are
       always checked first, so a forged token is InvalidToken even if its exp
       is in the past, and a correctly signed one past its exp is always
       ExpiredToken.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from auth.errors import ExpiredToken, InvalidToken
from auth.models import AccessClaims, RefreshClaims, User
from core.clock import Clock, SystemClock

_ALGORITHM = "HS256"

ACCESS_TOKEN_TTL = timedelta(minutes=15)
REFRESH_TOKEN_TTL = timedelta(days=7)


class TokenCodec:
    """Issues and verifies the two token kinds.

    Usage:
        codec = TokenCodec(access_secret, refresh_secret)
        token = codec.issue_access(user)
        claims = codec.verify_access(token)   # raises InvalidToken / ExpiredToken
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        clock: Clock | None = None,
        access_ttl: timedelta = ACCESS_TOKEN_TTL,
        refresh_ttl: timedelta = REFRESH_TOKEN_TTL,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("Both access and refresh signing secrets are required.")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.clock = clock or SystemClock()
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access(self, user: User) -> str:
        """Sign an access token carrying user_id, email and role."""
        claims = self._base_claims(user, "access", self.access_ttl)
        claims["email"] = user.email
        claims["role"] = user.role
        return jwt.encode(claims, self._access_secret, algorithm=_ALGORITHM)

    def issue_refresh(self, user: User) -> str:
        """Sign a refresh token carrying only user_id."""
        claims = self._base_claims(user, "refresh", self.refresh_ttl)
        return jwt.encode(claims, self._refresh_secret, algorithm=_ALGORITHM)

    def _base_claims(self, user: User, token_type: str, ttl: timedelta) -> dict[str, Any]:
        if user.id is None:
            raise ValueError("Cannot issue a token for a user without an id.")
        now = self.clock.now()
        return {
            "sub": str(user.id),
            "user_id": user.id,
            "type": token_type,
            "jti": secrets.token_urlsafe(16),
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
        }

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_access(self, token: str) -> AccessClaims:
        """Verify an access token. Raises InvalidToken or ExpiredToken."""
        payload = self._decode(token, self._access_secret, "access")
        email = payload.get("email")
        role = payload.get("role")
        if not isinstance(email, str) or not isinstance(role, str):
            raise InvalidToken("Access token is missing identity claims.")
        return AccessClaims(
            user_id=payload["user_id"],
            email=email,
            role=role,
            expires_at=_from_timestamp(payload["exp"]),
            jti=payload["jti"],
        )

    def verify_refresh(self, token: str) -> RefreshClaims:
        """Verify a refresh token. Raises InvalidToken or ExpiredToken."""
        payload = self._decode(token, self._refresh_secret, "refresh")
        return RefreshClaims(
            user_id=payload["user_id"],
            expires_at=_from_timestamp(payload["exp"]),
            jti=payload["jti"],
        )

    def _decode(self, token: str, secret: str, expected_type: str) -> dict[str, Any]:
        if not token or not isinstance(token, str):
            raise InvalidToken()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise InvalidToken() from exc

        if payload.get("type") != expected_type:
            raise InvalidToken("Wrong token type.")
        user_id = payload.get("user_id")
        exp = payload.get("exp")
        # bool is an int subclass; reject it explicitly.
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise InvalidToken("Token is missing user_id.")
        if not isinstance(exp, int) or not isinstance(payload.get("jti"), str):
            raise InvalidToken("Token is missing required claims.")

        if exp <= self.clock.now().timestamp():
            raise ExpiredToken()
        return payload


def _from_timestamp(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)
