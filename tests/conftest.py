"""
tests/conftest.py -- Shared test fixtures for LanguageBot integration tests.

This module provides:
  - StubVerifier: identity verifier that trusts tokens of the form
    "valid:<sub>:<email>[:<name>]" and rejects everything else
  - FakeUpstream: stands in for the requests.Session used by the gateway;
    records every outbound request and echoes it back as JSON
  - engine / user_store / vault: isolated stores for unit tests
  - api: TestClient wired to isolated stores through a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any api/auth/core import so
get_settings() picks them up (DEBUG generates SESSION_SECRET, the high rate
limit keeps login-heavy tests from tripping the limiter).
"""

from __future__ import annotations

import json
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
import requests
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Identity
from auth.sessions import SessionAuthenticator
from auth.store import UserStore
from core.db import create_db_engine
from core.errors import InvalidToken
from gateway.proxy import ProxyGateway
from practice.store import ConversationSettingsStore
from vault.cipher import CredentialCipher
from vault.store import CredentialVault

TEST_ENCRYPTION_KEY = "00112233445566778899aabbccddeeff" * 2
TEST_SESSION_SECRET = "test-session-secret-" + "x" * 32
UPSTREAM_BASE = "https://upstream.test"

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class StubVerifier:
    """Identity verifier double: "valid:<sub>:<email>[:<name>]" passes."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def verify(self, token: str) -> Identity:
        self.calls.append(token)
        parts = (token or "").split(":")
        if len(parts) < 3 or parts[0] != "valid":
            raise InvalidToken()
        name = parts[3] if len(parts) > 3 else parts[2]
        return Identity(subject_id=parts[1], email=parts[2], name=name)


class FakeResponse:
    def __init__(self, status_code: int, content: bytes, content_type: str = "application/json") -> None:
        self.status_code = status_code
        self.content = content
        self.headers = {"content-type": content_type}


@dataclass
class FakeUpstream:
    """requests.Session double for the gateway.

    By default every call returns 200 with a JSON echo of method, url, headers
    and body. Set `reply` to return a fixed FakeResponse, or `error` to raise.
    """

    calls: list[dict] = field(default_factory=list)
    reply: FakeResponse | None = None
    error: Exception | None = None

    def request(self, method, url, data=None, headers=None, timeout=None, allow_redirects=True):
        call = {
            "method": method,
            "url": url,
            "data": data,
            "headers": dict(headers or {}),
            "timeout": timeout,
            "allow_redirects": allow_redirects,
        }
        self.calls.append(call)
        if self.error is not None:
            raise self.error
        if self.reply is not None:
            return self.reply
        echo = {
            "method": method,
            "url": url,
            "headers": call["headers"],
            "body": (data or b"").decode("utf-8"),
        }
        return FakeResponse(200, json.dumps(echo).encode("utf-8"))


def make_sqlite_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    eng = create_db_engine(make_sqlite_url("unit"))
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def cipher() -> CredentialCipher:
    return CredentialCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture
def vault(engine, cipher) -> CredentialVault:
    return CredentialVault(engine, cipher)


@pytest.fixture
def make_user(user_store):
    """Return a factory that creates a user and returns its id."""

    def _make(sub: str = "sub-1", email: str = "user@example.com", name: str = "User") -> int:
        return user_store.upsert_identity(Identity(subject_id=sub, email=email, name=name)).id

    return _make


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    user_store: UserStore
    vault: CredentialVault
    verifier: StubVerifier
    upstream: FakeUpstream
    authenticator: SessionAuthenticator
    gateway: ProxyGateway

    def login(self, sub: str = "sub-42", email: str = "a@example.com", name: str = "Ada"):
        return self.client.post("/auth/login", json={"credentialToken": f"valid:{sub}:{email}:{name}"})


def _patch_lifespan(harness_parts: dict):
    """Return a lifespan that wires pre-built test components into app.state."""

    @asynccontextmanager
    async def patched_lifespan(app):
        for name, value in harness_parts.items():
            setattr(app.state, name, value)
        yield

    return patched_lifespan


def _build_api(fallback_key: str | None = None) -> Generator[ApiHarness, None, None]:
    eng = create_db_engine(make_sqlite_url("api"))
    user_store = UserStore(eng)
    vault = CredentialVault(eng, CredentialCipher(TEST_ENCRYPTION_KEY))
    verifier = StubVerifier()
    upstream = FakeUpstream()
    authenticator = SessionAuthenticator(verifier, user_store, TEST_SESSION_SECRET, expire_seconds=3600)
    gateway = ProxyGateway(vault, UPSTREAM_BASE, fallback_key=fallback_key, timeout=5.0, session=upstream)

    app.router.lifespan_context = _patch_lifespan(
        {
            "user_store": user_store,
            "vault": vault,
            "settings_store": ConversationSettingsStore(eng),
            "authenticator": authenticator,
            "gateway": gateway,
        }
    )
    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client, user_store, vault, verifier, upstream, authenticator, gateway)
    eng.dispose()


@pytest.fixture
def api() -> Generator[ApiHarness, None, None]:
    """TestClient against the real app with isolated stores and no fallback key."""
    yield from _build_api()


@pytest.fixture
def api_with_fallback() -> Generator[ApiHarness, None, None]:
    """Same as api, but the gateway has a server fallback key configured."""
    yield from _build_api(fallback_key="server-fallback-key")


@pytest.fixture
def upstream_down() -> FakeUpstream:
    return FakeUpstream(error=requests.ConnectionError("connection refused"))
