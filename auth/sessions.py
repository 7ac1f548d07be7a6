"""
auth/sessions.py -- Session Authenticator: login, guard, logout.

State machine per caller:

    Anonymous --login(token)--> Authenticated --logout / expiry--> Anonymous

Sessions are self-contained signed JWTs (auth/tokens.py), so validity is
decided from the evidence itself on every request -- there is no cached
"authenticated" flag anywhere. The one piece of server state is the
revocation list: logout() records the token's jti until the token would have
expired anyway, and every later validation consults it.

Session evidence is passed in explicitly. FastAPI dependencies
(auth/dependencies.py) pull it from the cookie or Authorization header and
hand it to this class.

Layer rule: no imports from api/, vault/, gateway/, or practice/.
"""

from __future__ import annotations

import logging
import threading
import time

from auth.identity import IdentityVerifier
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_session_token, decode_session_token
from core.errors import Unauthenticated

logger = logging.getLogger("languagebot.auth.sessions")


class RevocationList:
    """Thread-safe set of revoked token ids, each kept until its token expires."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._revoked: dict[str, float] = {}

    def revoke(self, jti: str, expires_at: float) -> None:
        with self._lock:
            self._prune(time.time())
            self._revoked[jti] = expires_at

    def is_revoked(self, jti: str) -> bool:
        with self._lock:
            return jti in self._revoked

    def __len__(self) -> int:
        with self._lock:
            return len(self._revoked)

    def _prune(self, now: float) -> None:
        # Caller holds the lock.
        expired = [jti for jti, exp in self._revoked.items() if exp <= now]
        for jti in expired:
            del self._revoked[jti]


class SessionAuthenticator:
    """Issues and validates sessions bound to verified identities.

    Usage:
        authn = SessionAuthenticator(verifier, user_store, secret_key, 86400)
        user, token = authn.login(id_token)
        authn.require_authenticated(token)   # -> user.id
        authn.logout(token)
    """

    def __init__(
        self,
        verifier: IdentityVerifier,
        user_store: UserStore,
        secret_key: str,
        expire_seconds: int,
        revocations: RevocationList | None = None,
    ) -> None:
        self.verifier = verifier
        self.user_store = user_store
        self.secret_key = secret_key
        self.expire_seconds = expire_seconds
        self.revocations = revocations or RevocationList()

    def login(self, id_token: str) -> tuple[User, str]:
        """Verify id_token, upsert the user, and return (user, session_token).

        Raises InvalidToken on verification failure; nothing is created then.
        """
        identity = self.verifier.verify(id_token)
        user = self.user_store.upsert_identity(identity)
        token = create_session_token(user.id, self.secret_key, self.expire_seconds)
        logger.info("User %s signed in", user.id)
        return user, token

    def authenticate(self, evidence: str | None) -> User:
        """Return the User bound to evidence or raise Unauthenticated.

        Missing, malformed, tampered, expired and revoked evidence are all
        indistinguishable to the caller, as is a session whose user has been
        deleted.
        """
        if not evidence:
            raise Unauthenticated()
        payload = decode_session_token(evidence, self.secret_key)
        if payload is None or self.revocations.is_revoked(payload["jti"]):
            raise Unauthenticated()
        user = self.user_store.get_by_id(payload["user_id"])
        if user is None:
            raise Unauthenticated()
        return user

    def require_authenticated(self, evidence: str | None) -> int:
        """Guard for protected operations: return the bound user id."""
        return self.authenticate(evidence).id

    def logout(self, evidence: str | None) -> None:
        """Invalidate evidence. Invalid or already-expired evidence is ignored."""
        if not evidence:
            return
        payload = decode_session_token(evidence, self.secret_key)
        if payload is None:
            return
        self.revocations.revoke(payload["jti"], float(payload["exp"]))
        logger.info("User %s signed out", payload["user_id"])
