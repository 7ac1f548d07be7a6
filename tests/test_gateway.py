"""
tests/test_gateway.py -- Unit tests for gateway/proxy.py (ProxyGateway).

The upstream is the FakeUpstream double from conftest.py, so every outbound
request can be inspected without network access.
"""

import logging

import pytest
import requests

from conftest import FakeResponse, FakeUpstream
from core.db import credentials
from core.errors import InvalidUpstreamPath, NoCredential, StorageError, UpstreamError
from gateway.proxy import ProxyGateway

BASE = "https://upstream.test"


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def gateway(vault, upstream) -> ProxyGateway:
    return ProxyGateway(vault, BASE, session=upstream)


# ---------------------------------------------------------------------------
# Credential resolution
# ---------------------------------------------------------------------------


def test_user_key_is_used_when_stored(vault, make_user, upstream):
    uid = make_user()
    vault.save(uid, "sk-user")
    gw = ProxyGateway(vault, BASE, fallback_key="sk-fallback", session=upstream)
    assert gw.resolve_credential(uid) == ("sk-user", "user")


def test_stored_empty_user_key_still_wins_over_fallback(vault, make_user, upstream):
    uid = make_user()
    vault.save(uid, "")
    gw = ProxyGateway(vault, BASE, fallback_key="sk-fallback", session=upstream)
    assert gw.resolve_credential(uid) == ("", "user")


def test_fallback_key_used_when_user_has_none(vault, make_user, upstream):
    uid = make_user()
    gw = ProxyGateway(vault, BASE, fallback_key="sk-fallback", session=upstream)
    assert gw.resolve_credential(uid) == ("sk-fallback", "fallback")


def test_no_credential_anywhere_raises_and_sends_nothing(gateway, make_user, upstream):
    uid = make_user()
    with pytest.raises(NoCredential):
        gateway.forward(uid, "v1beta/models", "GET", b"", {})
    assert upstream.calls == []


def test_undecryptable_user_key_does_not_fall_back(engine, vault, make_user, upstream):
    uid = make_user()
    vault.save(uid, "sk-user")
    with engine.begin() as conn:
        conn.execute(credentials.update().where(credentials.c.user_id == uid).values(iv="zz"))
    gw = ProxyGateway(vault, BASE, fallback_key="sk-fallback", session=upstream)
    with pytest.raises(StorageError):
        gw.forward(uid, "v1beta/models", "GET", b"", {})
    assert upstream.calls == []


# ---------------------------------------------------------------------------
# Forwarding
# ---------------------------------------------------------------------------


def test_forward_injects_credential_and_preserves_method_and_body(gateway, vault, make_user, upstream):
    uid = make_user()
    vault.save(uid, "sk-test-key")
    body = b'{"contents":[{"parts":[{"text":"hola"}]}]}'

    resp = gateway.forward(
        uid,
        "v1beta/models/gemini-2.5-flash-lite:generateContent",
        "post",
        body,
        {"content-type": "application/json"},
    )

    call = upstream.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == f"{BASE}/v1beta/models/gemini-2.5-flash-lite:generateContent"
    assert call["data"] == body
    assert call["headers"]["x-goog-api-key"] == "sk-test-key"
    assert call["headers"]["content-type"] == "application/json"
    assert call["allow_redirects"] is False
    assert resp.status_code == 200


def test_caller_auth_and_transport_headers_are_not_forwarded(gateway, vault, make_user, upstream):
    uid = make_user()
    vault.save(uid, "sk-test-key")
    inbound = {
        "host": "localhost:3000",
        "cookie": "session=abc",
        "authorization": "Bearer abc",
        "content-length": "12",
        "connection": "keep-alive",
        "x-goog-api-key": "caller-supplied",
        "accept": "application/json",
    }
    gateway.forward(uid, "v1beta/models", "GET", b"", inbound)

    sent = upstream.calls[0]["headers"]
    for name in ("host", "cookie", "authorization", "content-length", "connection"):
        assert name not in {k.lower() for k in sent}
    assert sent["x-goog-api-key"] == "sk-test-key"
    assert sent["accept"] == "application/json"


def test_empty_body_is_sent_as_none(gateway, vault, make_user, upstream):
    uid = make_user()
    vault.save(uid, "sk-test-key")
    gateway.forward(uid, "v1beta/models", "GET", b"", {})
    assert upstream.calls[0]["data"] is None


def test_non_2xx_is_relayed_unchanged(gateway, vault, make_user, upstream):
    uid = make_user()
    vault.save(uid, "sk-test-key")
    upstream.reply = FakeResponse(429, b'{"error":{"code":429,"status":"RESOURCE_EXHAUSTED"}}')

    resp = gateway.forward(uid, "v1beta/models", "GET", b"", {})

    assert resp.status_code == 429
    assert resp.content == b'{"error":{"code":429,"status":"RESOURCE_EXHAUSTED"}}'
    assert resp.content_type == "application/json"


def test_transport_failure_raises_upstream_error(vault, make_user, upstream_down, caplog):
    uid = make_user()
    vault.save(uid, "sk-test-key")
    gw = ProxyGateway(vault, BASE, session=upstream_down)
    with caplog.at_level(logging.ERROR, logger="languagebot.gateway"):
        with pytest.raises(UpstreamError):
            gw.forward(uid, "v1beta/models", "GET", b"", {})
    assert "connection refused" in caplog.text


def test_timeout_raises_upstream_error(vault, make_user):
    uid = make_user()
    vault.save(uid, "sk-test-key")
    gw = ProxyGateway(vault, BASE, session=FakeUpstream(error=requests.Timeout("read timed out")))
    with pytest.raises(UpstreamError):
        gw.forward(uid, "v1beta/models", "GET", b"", {})


def test_credential_never_logged(gateway, vault, make_user, caplog):
    uid = make_user()
    vault.save(uid, "sk-very-secret")
    with caplog.at_level(logging.DEBUG):
        gateway.forward(uid, "v1beta/models", "GET", b"", {})
    assert "sk-very-secret" not in caplog.text
    assert "user key" in caplog.text


# ---------------------------------------------------------------------------
# Target construction
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "path, expected",
    [
        ("v1beta/models", f"{BASE}/v1beta/models"),
        ("/v1beta/models", f"{BASE}/v1beta/models"),
        ("v1beta/models/gemini:generateContent", f"{BASE}/v1beta/models/gemini:generateContent"),
        ("", f"{BASE}/"),
    ],
)
def test_build_target_joins_under_base(gateway, path, expected):
    assert gateway.build_target(path) == expected


def test_build_target_keeps_base_path_prefix(vault, upstream):
    gw = ProxyGateway(vault, "https://upstream.test/api/", session=upstream)
    assert gw.build_target("v1/models") == "https://upstream.test/api/v1/models"


@pytest.mark.parametrize(
    "path",
    [
        "../secret",
        "v1beta/../../etc/passwd",
        "v1beta/%2e%2e/admin",
        "v1beta/%2E%2E/admin",
        "v1beta/./models",
        "v1beta/%2e%2e%2fadmin",
        "v1beta/..%5cadmin",
        "v1beta/a%2f..%2fb",
        "v1beta\\..\\admin",
        "//evil.example.com/path",
        "https://evil.example.com/path",
        "v1beta/models?key=x",
        "v1beta/models#frag",
    ],
)
def test_build_target_rejects_escapes(gateway, path):
    with pytest.raises(InvalidUpstreamPath):
        gateway.build_target(path)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("v1beta/files/a%2520b", f"{BASE}/v1beta/files/a%2520b"),
        ("v1beta/files/a%20b", f"{BASE}/v1beta/files/a%20b"),
        ("v1beta/files/a%2Fb", f"{BASE}/v1beta/files/a%2Fb"),
        ("v1beta/%3F", f"{BASE}/v1beta/%3F"),
    ],
)
def test_build_target_keeps_percent_encoding(gateway, path, expected):
    assert gateway.build_target(path) == expected


def test_path_rejection_happens_before_any_upstream_call(gateway, vault, make_user, upstream):
    uid = make_user()
    vault.save(uid, "sk-test-key")
    with pytest.raises(InvalidUpstreamPath):
        gateway.forward(uid, "../admin", "GET", b"", {})
    assert upstream.calls == []


def test_query_is_forwarded_without_key_param(gateway):
    url = gateway.build_target("v1beta/models", "pageSize=5&key=leaked&alt=json")
    assert url == f"{BASE}/v1beta/models?pageSize=5&alt=json"


@pytest.mark.parametrize("base", ["ftp://upstream.test", "upstream.test", ""])
def test_invalid_base_url_is_rejected(vault, base):
    with pytest.raises(ValueError):
        ProxyGateway(vault, base)
