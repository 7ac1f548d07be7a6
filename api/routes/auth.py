"""
api/routes/auth.py -- Session endpoints.

Routes:
  POST /auth/login   -- verify a Google ID token; set the session cookie
  POST /auth/logout  -- revoke the presented session; clear the cookie
  GET  /auth/status  -- report whether the caller is signed in

Security:
  POST /auth/login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on login responses -- they carry a fresh session.
  Verification failures all return the same 401 body shape; the reason is
  logged server-side.
"""

from typing import Any

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AuthStatusResponse, LoginResponse, SuccessResponse, UserInfo
from auth.dependencies import get_session_evidence, try_get_current_user
from auth.models import User
from auth.sessions import SessionAuthenticator
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings
from core.errors import InvalidToken

# Auth policy: all three routes are public. /auth/logout needs no prior auth
# because revoking an invalid token is a no-op.
router = APIRouter()

_MAX_TOKEN_LENGTH = 8192


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


def _user_info(user: User) -> UserInfo:
    return UserInfo(id=user.id, email=user.email, name=user.name)


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_login_rate_limit)
def login(request: Request, body: Any = Body(default=None)) -> JSONResponse:
    """Exchange an identity-provider token for a session cookie.

    Expects {"credentialToken": "..."}. Any other shape, including a
    non-string token, is a failed login (401), never a 422.

    Sync handler on purpose: verification may call the identity provider, and
    FastAPI runs sync handlers on the threadpool.
    """
    credential_token = body.get("credentialToken") if isinstance(body, dict) else None
    if not isinstance(credential_token, str) or not credential_token:
        raise InvalidToken("Missing identity token.")
    if len(credential_token) > _MAX_TOKEN_LENGTH:
        raise InvalidToken()

    authenticator: SessionAuthenticator = request.app.state.authenticator
    user, token = authenticator.login(credential_token)

    settings = get_settings()
    resp = JSONResponse(content=LoginResponse(user=_user_info(user)).model_dump())
    set_session_cookie(resp, token, max_age=authenticator.expire_seconds, secure=settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=SuccessResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the presented session and clear the cookie."""
    authenticator: SessionAuthenticator = request.app.state.authenticator
    authenticator.logout(get_session_evidence(request))
    resp = JSONResponse(content=SuccessResponse().model_dump())
    clear_session_cookie(resp, secure=get_settings().secure_cookies)
    return resp


@router.get("/auth/status", response_model=AuthStatusResponse)
def status(request: Request) -> AuthStatusResponse:
    user = try_get_current_user(request)
    if user is None:
        return AuthStatusResponse(authenticated=False)
    return AuthStatusResponse(authenticated=True, user=_user_info(user))
