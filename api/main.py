"""
api/main.py -- FastAPI application entry point for authcore.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Composition:
  build_services(settings) is the only place the object graph is wired:
  engine -> stores -> transaction wrapper -> usecases, and TokenMaker ->
  Authenticator / SessionService. Nothing below this module reads settings or
  holds a module-level instance of any of them. The lifespan puts the result
  on app.state; tests call build_services() directly with their own Settings.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.engine import Engine

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.identity import router as identity_router
from api.routes.v1.permissions import router as permissions_router
from api.routes.v1.users import router as users_router
from auth.authenticator import Authenticator
from auth.tokens import TokenMaker
from core.config import Settings, get_settings
from core.database import create_db_engine, create_transaction_wrapper
from identity.permissions import PermissionUsecase
from identity.sessions import SessionService
from identity.store import PermissionStore, UserStore
from identity.users import UserUsecase

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authcore.api")

# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------


@dataclass
class Services:
    engine: Engine
    user_store: UserStore
    permission_store: PermissionStore
    maker: TokenMaker
    authenticator: Authenticator
    user_usecase: UserUsecase
    permission_usecase: PermissionUsecase
    sessions: SessionService


def build_services(settings: Settings) -> Services:
    """Construct every long-lived collaborator from one Settings instance."""
    engine = create_db_engine(settings.database_url)
    user_store = UserStore(engine)
    permission_store = PermissionStore(engine)
    maker = TokenMaker(settings.secret_key)

    user_usecase = UserUsecase(user_store)
    permission_usecase = PermissionUsecase(permission_store, create_transaction_wrapper(engine))

    return Services(
        engine=engine,
        user_store=user_store,
        permission_store=permission_store,
        maker=maker,
        authenticator=Authenticator(maker, settings.access_token_cookie_key),
        user_usecase=user_usecase,
        permission_usecase=permission_usecase,
        sessions=SessionService(
            user_usecase,
            permission_usecase,
            maker,
            access_token_duration_ms=settings.access_token_duration_ms,
            refresh_token_duration_ms=settings.refresh_token_duration_ms,
            instance_id=settings.instance_id,
        ),
    )


def attach_services(app: FastAPI, settings: Settings, services: Services) -> None:
    app.state.settings = settings
    app.state.engine = services.engine
    app.state.user_store = services.user_store
    app.state.permission_store = services.permission_store
    app.state.maker = services.maker
    app.state.authenticator = services.authenticator
    app.state.user_usecase = services.user_usecase
    app.state.permission_usecase = services.permission_usecase
    app.state.sessions = services.sessions


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build services on startup, dispose of the engine's pool on shutdown."""
    logger.info("authcore API starting up")
    settings = get_settings()
    services = build_services(settings)
    attach_services(app, settings, services)
    logger.info("Services initialized (database=%s)", services.engine.url.render_as_string(hide_password=True))

    yield

    services.engine.dispose()
    logger.info("authcore API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="authcore API",
    description="Token issuing, scope-based authorization, and user permission management.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# The login route decorator and SlowAPIMiddleware both resolve the limiter here.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s -> %d in %.1fms", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(identity_router, prefix="/api/v1", tags=["Identity"])
app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(permissions_router, prefix="/api/v1", tags=["Permissions"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error body is {"error": {code, message, detail}}. Service failures
# arrive as HTTPException(detail=AppError.to_dict()) and pass through as-is.
# ---------------------------------------------------------------------------


def error_response(
    status_code: int,
    code: str,
    message: str,
    detail: object = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "unknown")
    return error_response(
        429,
        "rate_limited",
        "Too many requests.",
        detail=str(exc.detail),
        headers={"Retry-After": str(int(getattr(exc, "retry_after", 60)))},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 for body, path or query parameters that fail pydantic validation."""
    return error_response(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)
    return error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the traceback, return only a generic 500 to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, "internal_error", "An unexpected error occurred.")


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Liveness probe. Unauthenticated and not rate limited."""
    return HealthResponse(version=VERSION)
