import logging
from typing import List, Optional, Tuple

import httpx
from fastapi import Request

from sitemirror.config import ProxyConfig
from sitemirror.errors import BackendTimeout, BackendUnreachable
from sitemirror.models import RewriteContext
from sitemirror.rewrite.headers import HOP_BY_HOP_HEADERS

logger = logging.getLogger("uvicorn.error")

# Recomputed for the outbound request
REPLACED_REQUEST_HEADERS = {"host", "content-length", "accept-encoding"}

# Request headers that may carry the proxy origin back to the backend
ORIGIN_BEARING_HEADERS = {"referer", "origin"}


def get_target_url(request: Request, config: ProxyConfig) -> str:
    """Construct the backend URL for the request path and query."""
    path = request.url.path or "/"
    if not path.startswith("/"):
        path = "/" + path
    query_string = str(request.url.query)
    if query_string:
        path = f"{path}?{query_string}"
    return f"{config.backend_origin}{path}"


def to_backend_url(value: str, ctx: RewriteContext, config: ProxyConfig) -> str:
    """Map a URL on the proxy origin back onto the backend origin."""
    if value.lower().startswith(ctx.proxy_origin.lower()):
        rest = value[len(ctx.proxy_origin):]
        if not rest or rest[0] in "/?#":
            return config.backend_origin + rest
    return value


def prepare_headers(
    request: Request,
    config: ProxyConfig,
    ctx: RewriteContext,
    identity_encoding: bool,
) -> List[Tuple[str, str]]:
    """
    Prepare headers for forwarding to the backend.

    Hop-by-hop headers are removed, ``Host`` becomes the backend host and
    ``Accept-Encoding`` is forced to ``identity`` when the body will be
    rewritten.
    """
    headers = []
    for name, value in request.headers.items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS or name_lower in REPLACED_REQUEST_HEADERS:
            continue
        if name_lower in ORIGIN_BEARING_HEADERS:
            value = to_backend_url(value, ctx, config)
        headers.append((name_lower, value))

    headers.append(("host", config.backend_host))
    if identity_encoding:
        headers.append(("accept-encoding", "identity"))
    else:
        headers.append(("accept-encoding", request.headers.get("accept-encoding", "identity")))

    client_ip = request.client.host if request.client else "unknown"
    existing_xff = request.headers.get("x-forwarded-for", "")
    headers = [(k, v) for k, v in headers if not k.startswith("x-forwarded-")]
    headers.append(("x-forwarded-for", f"{existing_xff}, {client_ip}".strip(", ")))
    headers.append(("x-forwarded-host", ctx.proxy_host))
    headers.append(("x-forwarded-proto", ctx.proxy_scheme))
    return headers


class UpstreamExchange:
    """An in-flight backend response together with the client that owns it."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self.client = client
        self.response = response

    async def aclose(self) -> None:
        await self.response.aclose()
        await self.client.aclose()


async def open_upstream(
    request: Request,
    config: ProxyConfig,
    ctx: RewriteContext,
    identity_encoding: bool,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> UpstreamExchange:
    """
    Send the request to the backend and return once the response headers arrive.

    The body is left unread. Failures are raised once and never retried.
    """
    target_url = get_target_url(request, config)
    body = await request.body()
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout_seconds),
        follow_redirects=False,  # Handle redirects manually for rewriting
        transport=transport,
    )
    try:
        upstream_request = client.build_request(
            method=request.method,
            url=target_url,
            headers=prepare_headers(request, config, ctx, identity_encoding),
            content=body or None,
        )
        response = await client.send(upstream_request, stream=True)
    except httpx.TimeoutException as e:
        await client.aclose()
        logger.error(f"[Upstream] Timeout for {target_url}: {e}")
        raise BackendTimeout(f"Backend did not respond in time: {e}") from e
    except httpx.TransportError as e:
        await client.aclose()
        logger.error(f"[Upstream] Failed to connect to {target_url}: {e}")
        raise BackendUnreachable(f"Cannot reach backend: {e}") from e
    logger.debug(f"[Upstream] {request.method} {target_url} -> {response.status_code}")
    return UpstreamExchange(client, response)
