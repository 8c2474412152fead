"""
Rewriting of response headers that carry the backend origin.

``Location`` and ``Link`` go through the URL passes, ``Set-Cookie`` values are
made to stick to whatever host the client used, and hop-by-hop headers are
dropped. These rewrites are cheap, so they run for binary pass-through
responses as well.
"""

import logging
from typing import Iterable, List
from urllib.parse import urlsplit

import httpx

from sitemirror.config import ProxyConfig
from sitemirror.models import RewriteContext
from sitemirror.rewrite.cookies import CookieAttributes, CookieParseError
from sitemirror.rewrite.urls import UrlRewriter
from sitemirror.utils import mask_cookie

logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def rewrite_location(location: str, ctx: RewriteContext, rewriter: UrlRewriter) -> str:
    """
    Point a redirect target at the proxy.

    Relative locations are returned unchanged. When the proxy is served over
    plain HTTP, an ``https:`` location is downgraded to ``http:`` only when its
    host is the proxy host; redirects to any other https host are left alone.
    """
    if not location:
        return location
    rewritten = rewriter.rewrite_encoded(rewriter.rewrite(location, ctx), ctx)
    if ctx.is_plaintext and rewritten[:6].lower() == "https:":
        if urlsplit(rewritten).netloc.lower() == ctx.proxy_host.lower():
            rewritten = "http:" + rewritten[6:]
    if rewritten != location:
        logger.debug(f"[Headers] Location {location} -> {rewritten}")
    return rewritten


def rewrite_set_cookie(
    values: Iterable[str], ctx: RewriteContext, strip_domain: bool = True
) -> List[str]:
    """
    Rewrite each ``Set-Cookie`` value independently, preserving their order.

    ``Domain`` is removed so the cookie binds to the serving host, ``Secure``
    is removed on a plaintext proxy (the browser would never send it back) and
    ``Path=/`` is added when no path was given. Values that cannot be parsed
    are passed through untouched.
    """
    rewritten = []
    for raw in values:
        try:
            cookie = CookieAttributes.parse(raw)
        except CookieParseError as e:
            logger.warning(f"[Headers] Leaving unparseable cookie as-is: {e}")
            rewritten.append(raw)
            continue
        if strip_domain:
            cookie.strip_domain()
        if ctx.is_plaintext:
            cookie.strip_secure()
        cookie.ensure_path()
        value = cookie.to_header()
        logger.debug(f"[Headers] Set-Cookie {mask_cookie(raw)} -> {mask_cookie(value)}")
        rewritten.append(value)
    return rewritten


def rewrite_link_header(value: str, ctx: RewriteContext, rewriter: UrlRewriter) -> str:
    return rewriter.rewrite(value, ctx)


def strip_content_length(headers: httpx.Headers) -> None:
    headers.pop("content-length", None)


def rewrite_response_headers(
    headers: httpx.Headers,
    ctx: RewriteContext,
    rewriter: UrlRewriter,
    config: ProxyConfig,
) -> httpx.Headers:
    """Return a copy of backend response headers ready for the client."""
    result = []
    for name, value in headers.multi_items():
        lowered = name.lower()
        if lowered in HOP_BY_HOP_HEADERS:
            continue
        if lowered == "location":
            value = rewrite_location(value, ctx, rewriter)
        elif lowered == "set-cookie":
            value = rewrite_set_cookie([value], ctx, config.strip_cookie_domain)[0]
        elif lowered == "link":
            value = rewrite_link_header(value, ctx, rewriter)
        result.append((lowered, value))
    return httpx.Headers(result)
