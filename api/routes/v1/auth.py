"""
api/routes/v1/auth.py -- Session endpoints.

Routes:
  POST /api/v1/auth/login    -- email + password; returns and sets both tokens
  POST /api/v1/auth/refresh  -- exchange a refresh token (body or cookie) for a new pair
  POST /api/v1/auth/logout   -- clears both cookies; 200
  GET  /api/v1/auth/me       -- claims of the caller's access token (requires auth)

Security:
  POST /login is rate-limited per IP (settings.login_rate_limit).
  Unknown email and wrong password return the same INVALID_CREDENTIALS error.
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.errors import raise_for_service
from api.limiter import limiter, login_rate_limit
from api.models import LoginRequest, MeResponse, RefreshRequest, TokenPairResponse
from auth.dependencies import get_current_payload
from auth.models import Payload
from auth.tokens import set_auth_cookie
from core.config import Settings
from identity.sessions import SessionService

# Auth policy:
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/refresh:  public, the refresh token is the credential
# - POST /api/v1/auth/logout:   public, clearing cookies needs no prior auth
# - GET  /api/v1/auth/me:       requires a valid access token
router = APIRouter()


def token_response(request: Request, data: dict[str, Any], status_code: int = 200, model=TokenPairResponse) -> JSONResponse:
    """JSON body with the token pair, plus both tokens as httpOnly cookies."""
    settings: Settings = request.app.state.settings
    resp = JSONResponse(status_code=status_code, content=model(**data).model_dump())
    set_auth_cookie(
        resp,
        settings.access_token_cookie_key,
        data["access_token"],
        settings.access_token_max_age,
        secure=settings.secure_cookies,
    )
    set_auth_cookie(
        resp,
        settings.refresh_token_cookie_key,
        data["refresh_token"],
        settings.refresh_token_max_age,
        secure=settings.secure_cookies,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=TokenPairResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set access and refresh cookies."""
    sessions: SessionService = request.app.state.sessions
    result = sessions.login(body.email, body.password)
    if not result.ok:
        raise_for_service(result)
    return token_response(request, result.data)


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(request: Request, body: RefreshRequest | None = None) -> JSONResponse:
    """Issue a new token pair. The body token wins over the refresh cookie."""
    settings: Settings = request.app.state.settings
    sessions: SessionService = request.app.state.sessions
    token = (body.refresh_token if body else None) or request.cookies.get(settings.refresh_token_cookie_key)
    result = sessions.refresh(token)
    if not result.ok:
        raise_for_service(result)
    return token_response(request, result.data)


@router.post("/auth/logout")
async def logout(request: Request) -> JSONResponse:
    """Clear both token cookies."""
    settings: Settings = request.app.state.settings
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie(settings.access_token_cookie_key)
    resp.delete_cookie(settings.refresh_token_cookie_key)
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(payload: Payload = Depends(get_current_payload)) -> MeResponse:
    """Return the identity claims of the current access token."""
    return MeResponse.from_payload(payload)
