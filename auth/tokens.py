"""
auth/tokens.py -- Session JWT encode/decode and cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SESSION_SECRET and carry
       user_id, a random jti and expiry. Verification returns None on any
       failure -- the session authenticator turns that into Unauthenticated.

  jti: every token gets its own id so logout can revoke exactly that token
       (see auth/sessions.py) without a server-side session table.

  Cookie: httpOnly so page scripts cannot read it, samesite=lax against
       cross-site POSTs, secure in production, max_age equal to the token
       lifetime so both expire together.

Layer rule: no imports from api/, vault/, gateway/, or practice/.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

SESSION_COOKIE = "session"
_ALGORITHM = "HS256"


def create_session_token(user_id: int, secret_key: str, expire_seconds: int) -> str:
    """Encode a signed session JWT for user_id valid for expire_seconds."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "user_id": user_id,
        "jti": secrets.token_urlsafe(16),
        "iat": now,
        "exp": now + timedelta(seconds=expire_seconds),
    }
    return jwt.encode(payload, secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str, secret_key: str) -> dict | None:
    """Decode and verify a session JWT. Returns the payload dict or None.

    Expired, tampered and malformed tokens all return None.
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not isinstance(payload.get("user_id"), int) or "jti" not in payload or "exp" not in payload:
        return None
    return payload


def set_session_cookie(response, token: str, max_age: int, secure: bool) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_session_cookie(response, secure: bool) -> None:
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="lax", secure=secure)
