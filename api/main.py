"""
api/main.py -- FastAPI application entry point for LanguageBot.

Run with:  python main.py serve
           uvicorn api.main:app --reload

Middleware stack (outermost to innermost; add_middleware() prepends):
  1. log_requests          -- one access log line per request
  2. SlowAPIMiddleware     -- enforces rate limits from api.limiter
  3. CORSMiddleware        -- adds CORS headers for allowed browser origins
  4. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan builds every component from Settings at startup and disposes the
database engine on shutdown:

  engine -> UserStore, CredentialVault (+ CredentialCipher), ConversationSettingsStore
  IdentityVerifier + UserStore -> SessionAuthenticator
  CredentialVault -> ProxyGateway
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.credential import router as credential_router
from api.routes.proxy import router as proxy_router
from api.routes.settings import router as settings_router
from auth.identity import IdentityVerifier
from auth.sessions import SessionAuthenticator
from auth.store import UserStore
from core.config import Settings, get_settings
from core.db import create_db_engine
from core.errors import AppError
from gateway.proxy import ProxyGateway
from practice.store import ConversationSettingsStore
from vault.cipher import CredentialCipher
from vault.store import CredentialVault

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("languagebot.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_components(app: FastAPI, settings: Settings) -> None:
    """Construct every component from settings and attach it to app.state.

    Emits the startup diagnostics operators need to see: an ephemeral
    encryption key, a missing client id, and whether a fallback key exists.
    """
    engine = create_db_engine(settings.database_url)

    cipher = CredentialCipher(settings.encryption_key)
    if cipher.ephemeral:
        logger.warning("Credential vault key is EPHEMERAL -- stored API keys will not survive a restart")

    if not settings.google_client_id:
        logger.warning("GOOGLE_CLIENT_ID is not set -- every login will be rejected")

    app.state.user_store = UserStore(engine)
    app.state.vault = CredentialVault(engine, cipher)
    app.state.settings_store = ConversationSettingsStore(engine)

    verifier = IdentityVerifier(
        client_id=settings.google_client_id,
        issuers=settings.identity_issuers,
        jwks_url=settings.identity_jwks_url,
        timeout=settings.identity_timeout,
    )
    app.state.authenticator = SessionAuthenticator(
        verifier=verifier,
        user_store=app.state.user_store,
        secret_key=settings.session_secret,
        expire_seconds=settings.session_expire_seconds,
    )
    app.state.gateway = ProxyGateway(
        vault=app.state.vault,
        base_url=settings.upstream_base_url,
        credential_header=settings.upstream_credential_header,
        fallback_key=settings.gemini_api_key,
        timeout=settings.upstream_timeout,
    )
    if settings.gemini_api_key:
        logger.info("Gateway upstream=%s fallback_key=configured", settings.upstream_base_url)
    else:
        logger.warning("Gateway upstream=%s has no fallback key -- users must save their own", settings.upstream_base_url)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build components on startup; dispose the database engine on shutdown."""
    logger.info("LanguageBot API starting up (env=%s)", _settings.app_env)
    build_components(app, _settings)

    yield

    app.state.user_store.close()
    logger.info("LanguageBot API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="LanguageBot API",
    description="Session, credential vault and upstream proxy for the LanguageBot conversation trainer.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if _settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(credential_router, tags=["Credential"])
app.include_router(proxy_router, tags=["Proxy"])
app.include_router(settings_router, tags=["Settings"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so the browser can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(
            exclude_none=True
        ),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Translate the typed failures of core/errors.py into their HTTP status.

    Server-side failures were already logged with detail where they occurred;
    only the caller-safe message crosses the boundary.
    """
    if exc.status_code >= 500:
        logger.warning("%s on %s %s", exc.code, request.method, request.url.path)
    return _error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Must stay sync: SlowAPIMiddleware calls it directly, without awaiting,
    for routes whose limit is a callable.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation.

    Only location, type and message are reported. The submitted value
    (pydantic's "input") is dropped: it may be a token or an API key.
    """
    problems = [
        {"loc": ".".join(str(part) for part in err.get("loc", ())), "type": err.get("type"), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return _error_response(422, "validation_error", "Request validation failed.", json.dumps(problems))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail={"code": ..., "message": ...}.
    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the server log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is reachable regardless of router state.
# No rate limit -- load balancer health checks must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and database reachability."""
    try:
        db_ok = request.app.state.user_store.ping()
    except SQLAlchemyError:
        logger.exception("Health check database query failed")
        db_ok = False
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=__version__,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
