"""
api/routes/proxy.py -- Authenticated pass-through to the upstream API.

  GET|POST /proxy/{upstream_path:path}

The browser calls e.g. POST /proxy/v1beta/models/gemini-2.5-flash-lite:generateContent
and receives exactly what the upstream answered. Credential resolution, header
scrubbing and path checks live in gateway/proxy.py; this module only moves
bytes between Starlette and the gateway.

The upstream path is taken from the raw request path, not the decoded route
parameter, so percent-escapes such as %2520 or %2F reach the upstream as sent.

The handler is async so it can read the raw body, and hands the blocking
upstream call to the threadpool so a slow upstream never stalls the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from auth.dependencies import get_current_user_id
from gateway.proxy import ProxyGateway

router = APIRouter()

_PREFIX = "/proxy/"


def encoded_upstream_path(request: Request, upstream_path: str) -> str:
    """Return the part of the raw request path after /proxy/, still encoded.

    Falls back to the decoded route parameter when the server supplied no
    raw_path or it does not carry the expected prefix.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        # Some servers leave the query string on raw_path.
        raw = raw_path.split(b"?", 1)[0].decode("latin-1")
        if raw.startswith(_PREFIX):
            return raw[len(_PREFIX):]
    return upstream_path


@router.api_route("/proxy/{upstream_path:path}", methods=["GET", "POST"])
async def proxy(
    request: Request,
    upstream_path: str,
    user_id: int = Depends(get_current_user_id),
) -> Response:
    gateway: ProxyGateway = request.app.state.gateway
    body = await request.body()
    upstream = await run_in_threadpool(
        gateway.forward,
        user_id,
        encoded_upstream_path(request, upstream_path),
        request.method,
        body,
        dict(request.headers),
        request.url.query,
    )
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.content_type,
    )
