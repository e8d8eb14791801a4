"""
api/routes/v1/auth.py -- Authentication and session REST endpoints.

Routes:
  POST /api/v1/auth/register    -- create account; returns user + token pair (201)
  POST /api/v1/auth/login       -- password login; returns user + token pair
  POST /api/v1/auth/refresh     -- rotate a refresh token; returns a new pair
  POST /api/v1/auth/logout      -- revoke one refresh token (idempotent)
  POST /api/v1/auth/logout-all  -- revoke every session of the caller (requires auth)
  GET  /api/v1/auth/me          -- current user profile (requires auth)

Every handler is a thin call into AuthService. Engine failures propagate as
AuthError and are turned into responses by the handler registered in
api/main.py (see api/errors.py for the status table). Handlers never catch
them.

Handlers are plain `def`, not `async def`: bcrypt is CPU-bound and FastAPI
runs sync handlers in its thread pool, keeping the event loop free.

Security:
  POST /login and /register are rate-limited per IP (Settings.login_rate_limit,
  Settings.register_rate_limit). @router.post must stay above @limiter.limit
  so the router registers the limited wrapper, not the bare function.
  Cache-Control: no-store on every response that carries a token.
  /logout needs no access token: holding the refresh token is sufficient to
  revoke it. /logout-all acts on the user id from the caller's access token,
  never on an id from the request body.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthResponse,
    LoginRequest,
    LogoutAllResponse,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_current_claims
from auth.models import AccessClaims
from auth.service import AuthService
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:    public, rate-limited
# - POST /api/v1/auth/login:       public, rate-limited
# - POST /api/v1/auth/refresh:     public -- the refresh token is the credential
# - POST /api/v1/auth/logout:      public -- the refresh token is the credential
# - POST /api/v1/auth/logout-all:  requires access token (get_current_claims)
# - GET  /api/v1/auth/me:          requires access token (get_current_claims)
router = APIRouter()


def _no_store(status_code: int, content: dict) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _access_ttl_seconds(service: AuthService) -> int:
    return int(service.codec.access_ttl.total_seconds())


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
@limiter.limit(lambda: get_settings().register_rate_limit)
def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Create an account and open its first session. Role defaults to operator."""
    result = service.register(
        body.email,
        body.password,
        body.name,
        role=body.role.value if body.role is not None else None,
    )
    payload = AuthResponse.from_result(result, _access_ttl_seconds(service))
    return _no_store(201, payload.model_dump(mode="json"))


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(lambda: get_settings().login_rate_limit)
def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password.

    Wrong password and unknown email both return 401 invalid_credentials.
    """
    result = service.login(body.email, body.password)
    payload = AuthResponse.from_result(result, _access_ttl_seconds(service))
    return _no_store(200, payload.model_dump(mode="json"))


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token is consumed."""
    pair = service.refresh(body.refresh_token)
    payload = TokenPairResponse.from_pair(pair, _access_ttl_seconds(service))
    return _no_store(200, payload.model_dump(mode="json"))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    body: Optional[LogoutRequest] = None,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke one refresh token. Unknown tokens and empty bodies still return 200."""
    if body is not None and body.refresh_token:
        service.logout(body.refresh_token)
    return MessageResponse(message="Logout successful.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(
    claims: AccessClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> LogoutAllResponse:
    """Revoke every refresh token owned by the caller.

    Outstanding access tokens stay valid until they expire.
    """
    removed = service.logout_all(claims.user_id)
    return LogoutAllResponse(deleted_sessions=removed)


@router.get("/auth/me", response_model=UserResponse)
def me(
    claims: AccessClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Return the profile of the currently authenticated user."""
    return UserResponse.from_public(service.get_profile(claims.user_id))
