"""
gateway/proxy.py -- Proxy Gateway to the upstream generative-language API.

Flow for one forwarded call:
  1. Resolve the credential: the user's own key from the vault, else the
     server fallback (GEMINI_API_KEY), else NoCredential.
  2. Build the target URL under UPSTREAM_BASE_URL. Paths that could escape the
     configured root (dot segments, absolute or scheme-relative URLs,
     backslashes, encoded variants) raise InvalidUpstreamPath. The path keeps
     the caller's percent-encoding.
  3. Copy inbound headers minus transport and caller-auth headers, then inject
     the credential header.
  4. Send the request with the original method and body; redirects are not
     followed.
  5. Relay status, body and content type untouched. Non-2xx upstream answers
     are relayed too -- they are the upstream's answer, not our failure.
  6. No response at all (DNS, connect, timeout) -> UpstreamError, logged here
     with detail; the caller only sees a generic 502.

The gateway never parses request or response bodies and never retries.

Layer rule: imports core/ and vault/ only.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

import requests

from core.errors import InvalidUpstreamPath, NoCredential, UpstreamError
from vault.store import CredentialVault

logger = logging.getLogger("languagebot.gateway")

# Never forwarded upstream: transport-identifying, caller-auth and hop-by-hop
# headers. content-length is recomputed by requests; accept-encoding is left to
# requests so the relayed body is always decoded.
_STRIPPED_HEADERS = frozenset(
    {
        "host",
        "cookie",
        "authorization",
        "content-length",
        "accept-encoding",
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

# Query parameters dropped before forwarding (Google also accepts ?key=).
_STRIPPED_QUERY_PARAMS = frozenset({"key"})


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    content: bytes
    content_type: str | None = None


class ProxyGateway:
    """Forwards caller requests to the upstream API with credential substitution.

    Usage:
        gateway = ProxyGateway(vault, "https://generativelanguage.googleapis.com",
                               fallback_key=settings.gemini_api_key)
        resp = gateway.forward(user_id, "v1beta/models/x:generateContent", "POST", body, headers)
    """

    def __init__(
        self,
        vault: CredentialVault,
        base_url: str,
        credential_header: str = "x-goog-api-key",
        fallback_key: str | None = None,
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.vault = vault
        self.credential_header = credential_header
        self.fallback_key = fallback_key or None
        self.timeout = timeout
        self._session = session or requests.Session()

        base = urlsplit(base_url)
        if base.scheme not in ("http", "https") or not base.netloc:
            raise ValueError(f"UPSTREAM_BASE_URL must be an absolute http(s) URL, got {base_url!r}")
        self._scheme = base.scheme
        self._netloc = base.netloc
        self._base_path = base.path.rstrip("/")

    # ------------------------------------------------------------------
    # Request construction
    # ------------------------------------------------------------------

    def resolve_credential(self, user_id: int) -> tuple[str, str]:
        """Return (credential, source) where source is "user" or "fallback".

        The user's own key, even an empty one, wins over the fallback. A
        stored key that fails to decrypt raises StorageError from the vault;
        it does not fall through to the fallback.
        """
        user_key = self.vault.get(user_id)
        if user_key is not None:
            return user_key, "user"
        if self.fallback_key:
            return self.fallback_key, "fallback"
        raise NoCredential()

    def build_target(self, upstream_path: str, query: str = "") -> str:
        """Join upstream_path onto the base URL, refusing anything that escapes it.

        upstream_path is used as given, percent-encoding included, so callers
        should pass the path as it arrived on the wire. Dot segments are
        checked on the decoded form.
        """
        raw = upstream_path or ""
        if any(ch in raw for ch in "\\?#") or "://" in raw or raw.startswith("//"):
            raise InvalidUpstreamPath()
        relative = raw.lstrip("/")
        for segment in relative.split("/"):
            # Encoded separators stay encoded in the outbound URL, but an
            # upstream that decodes them must still not see a dot segment.
            for part in unquote(segment).replace("\\", "/").split("/"):
                if part in (".", ".."):
                    raise InvalidUpstreamPath()

        path = f"{self._base_path}/{relative}"
        target = urlsplit(f"{self._scheme}://{self._netloc}{path}")
        if target.scheme != self._scheme or target.netloc != self._netloc:
            raise InvalidUpstreamPath()
        if not (target.path == self._base_path or target.path.startswith(self._base_path + "/")):
            raise InvalidUpstreamPath()

        params = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True) if k not in _STRIPPED_QUERY_PARAMS]
        return urlunsplit((target.scheme, target.netloc, target.path, urlencode(params), ""))

    def build_headers(self, inbound_headers: Mapping[str, str], credential: str) -> dict[str, str]:
        """Copy inbound headers minus the stripped set and inject the credential."""
        blocked = _STRIPPED_HEADERS | {self.credential_header.lower()}
        headers = {k: v for k, v in inbound_headers.items() if k.lower() not in blocked}
        headers[self.credential_header] = credential
        return headers

    # ------------------------------------------------------------------
    # Forwarding
    # ------------------------------------------------------------------

    def forward(
        self,
        user_id: int,
        upstream_path: str,
        method: str,
        body: bytes | None,
        inbound_headers: Mapping[str, str],
        query: str = "",
    ) -> UpstreamResponse:
        """Send one request upstream on behalf of user_id and return the raw answer."""
        credential, source = self.resolve_credential(user_id)
        url = self.build_target(upstream_path, query)
        headers = self.build_headers(inbound_headers, credential)

        try:
            resp = self._session.request(
                method.upper(),
                url,
                data=body or None,
                headers=headers,
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.RequestException as exc:
            logger.error("Upstream request %s /%s failed: %s", method.upper(), upstream_path.lstrip("/"), exc)
            raise UpstreamError() from None

        logger.info(
            "Proxied %s /%s for user %s -> %d (%s key)",
            method.upper(),
            upstream_path.lstrip("/"),
            user_id,
            resp.status_code,
            source,
        )
        return UpstreamResponse(
            status_code=resp.status_code,
            content=resp.content,
            content_type=resp.headers.get("content-type"),
        )
