"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Session evidence is read from two places, in priority order:
  1. The "session" cookie -- set by POST /auth/login for the browser.
  2. Authorization: Bearer <token> -- scripts holding the same session JWT.

The evidence is then handed explicitly to the SessionAuthenticator on
app.state; nothing about the result is cached on the request.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() raises Unauthenticated, which api/main.py maps to 401.
get_current_user_id() is what protected routes depend on.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import User
from auth.sessions import SessionAuthenticator
from auth.tokens import SESSION_COOKIE
from core.errors import Unauthenticated


def get_session_evidence(request: Request) -> str | None:
    """Return the raw session token presented with the request, if any."""
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def _authenticator(request: Request) -> SessionAuthenticator:
    return request.app.state.authenticator


def get_current_user(request: Request) -> User:
    """Require authentication. Raises Unauthenticated (HTTP 401).

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    return _authenticator(request).authenticate(get_session_evidence(request))


def get_current_user_id(request: Request) -> int:
    return _authenticator(request).require_authenticated(get_session_evidence(request))


def try_get_current_user(request: Request) -> User | None:
    """Return the authenticated User, or None. Never raises Unauthenticated."""
    try:
        return get_current_user(request)
    except Unauthenticated:
        return None
