"""
auth/dependencies.py -- FastAPI Depends() helpers for request authentication.

Only one auth method: Authorization: Bearer <access token>. The token is
verified statelessly by AuthService.verify_access_token() -- signature and
expiry, no store lookup.

get_current_claims() raises the engine's own InvalidToken / ExpiredToken
rather than an HTTPException, so the one error table in api/errors.py decides
every auth-related status code.

Layer rule: auth/dependencies.py may import from fastapi (for Request) because
this module is part of the FastAPI dependency injection system.
It still does not import from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import InvalidToken
from auth.models import AccessClaims
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def bearer_token(request: Request) -> str | None:
    """Return the raw token from an Authorization: Bearer header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        return token or None
    return None


def get_current_claims(request: Request) -> AccessClaims:
    """Require a valid access token. Raises InvalidToken (401) if absent or bad.

    Use as a FastAPI dependency:
        @router.post("/protected")
        def route(claims: AccessClaims = Depends(get_current_claims)): ...
    """
    token = bearer_token(request)
    if token is None:
        raise InvalidToken("Authentication required.")
    return get_auth_service(request).verify_access_token(token)

