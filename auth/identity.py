"""
auth/identity.py -- Verification of Google Identity Services ID tokens.

The browser obtains an ID token from Google's sign-in button and posts it to
POST /auth/login. IdentityVerifier decides whether that token is trustworthy
and extracts (subject_id, email, name).

Checks performed (python-jose does the cryptography):
  - RS256 signature against Google's published JWKS
  - iss is accounts.google.com (with or without scheme)
  - aud equals our GOOGLE_CLIENT_ID
  - exp is in the future
  - sub and email are present, email_verified is true

Every failure -- including failure to reach the JWKS endpoint -- surfaces as
InvalidToken so the route layer can answer 401 uniformly.

JWKS caching: keys are cached for JWKS_CACHE_TTL seconds. A token whose kid is
not in the cache triggers one refetch (Google rotates keys). The HTTP call is
made outside the cache lock so a slow provider never blocks other logins that
can be served from cache.

Layer rule: no imports from api/, vault/, gateway/, or practice/.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from typing import Any

import requests
from jose import JWTError, jwt

from auth.models import Identity
from core.errors import InvalidToken

logger = logging.getLogger("languagebot.auth.identity")

JWKS_CACHE_TTL = 3600
_ALGORITHMS = ["RS256"]


class IdentityVerifier:
    """Validates externally issued ID tokens for one client id.

    Args:
        client_id:  Expected audience (this app's OAuth client id).
        issuers:    Accepted iss values.
        jwks_url:   Where the provider publishes its signing keys.
        timeout:    Seconds allowed for the JWKS request.
        session:    Optional requests.Session (tests inject a fake).
    """

    def __init__(
        self,
        client_id: str,
        issuers: Sequence[str],
        jwks_url: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.client_id = client_id
        self.issuers = list(issuers)
        self.jwks_url = jwks_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._lock = threading.Lock()
        self._jwks: dict[str, Any] | None = None
        self._jwks_fetched_at = 0.0

    # ------------------------------------------------------------------
    # JWKS
    # ------------------------------------------------------------------

    def _fetch_jwks(self) -> dict[str, Any]:
        try:
            resp = self._session.get(self.jwks_url, timeout=self.timeout)
            resp.raise_for_status()
            jwks = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Failed to fetch identity provider keys from %s: %s", self.jwks_url, exc)
            raise InvalidToken("Identity provider is unavailable.") from None
        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            logger.error("Identity provider returned a malformed JWKS document")
            raise InvalidToken("Identity provider is unavailable.")
        with self._lock:
            self._jwks = jwks
            self._jwks_fetched_at = time.monotonic()
        return jwks

    def _get_jwks(self, kid: str | None) -> dict[str, Any]:
        with self._lock:
            cached = self._jwks
            fresh = cached is not None and (time.monotonic() - self._jwks_fetched_at) < JWKS_CACHE_TTL
        if cached is not None and fresh:
            known = {k.get("kid") for k in cached["keys"]}
            if kid is None or kid in known:
                return cached
        return self._fetch_jwks()

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, token: str) -> Identity:
        """Return the Identity in token, or raise InvalidToken."""
        if not self.client_id:
            logger.error("GOOGLE_CLIENT_ID is not configured; rejecting login")
            raise InvalidToken("Sign-in is not configured on this server.")
        if not token or not isinstance(token, str):
            raise InvalidToken("Missing identity token.")

        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise InvalidToken("Malformed identity token.") from None

        jwks = self._get_jwks(header.get("kid"))
        try:
            claims = jwt.decode(
                token,
                jwks,
                algorithms=_ALGORITHMS,
                audience=self.client_id,
                issuer=self.issuers,
                options={"verify_at_hash": False},
            )
        except JWTError as exc:
            logger.info("Identity token rejected: %s", exc)
            raise InvalidToken() from None

        subject_id = claims.get("sub")
        email = claims.get("email")
        if not subject_id or not email:
            raise InvalidToken("Identity token is missing the sub or email claim.")
        if not claims.get("email_verified", False):
            raise InvalidToken("Email address is not verified with the identity provider.")

        return Identity(subject_id=str(subject_id), email=email, name=claims.get("name") or email)
