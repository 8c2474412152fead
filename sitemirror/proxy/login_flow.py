"""
Password-protected post submission.

Posting a post password to the login endpoint makes the backend answer with a
nearly blank page that only sets the password cookie. Forwarding that page
leaves the visitor stranded, so the proxy keeps the cookie and sends the
browser straight back to the page it came from.
"""

import html
import logging

import httpx
from fastapi import Response

from sitemirror.config import ProxyConfig
from sitemirror.models import RewriteContext
from sitemirror.proxy.interceptor import build_response
from sitemirror.proxy.upstream import UpstreamExchange
from sitemirror.rewrite.headers import rewrite_location, rewrite_set_cookie
from sitemirror.rewrite.urls import UrlRewriter

logger = logging.getLogger("uvicorn.error")

REDIRECT_PAGE = """<html>
  <head>
    <meta http-equiv="refresh" content="0;url={url}">
  </head>
  <body>Password accepted, redirecting...</body>
</html>"""


def redirect_target(ctx: RewriteContext, rewriter: UrlRewriter) -> str:
    """The rewritten ``Referer`` of the submission, or the proxy root."""
    if ctx.referer_override:
        return rewrite_location(ctx.referer_override, ctx, rewriter)
    return f"{ctx.proxy_origin}/"


async def login_redirect_response(
    exchange: UpstreamExchange,
    config: ProxyConfig,
    rewriter: UrlRewriter,
    ctx: RewriteContext,
) -> Response:
    """Replace the backend's answer with a 302 back to the referring page."""
    try:
        cookies = exchange.response.headers.get_list("set-cookie")
    finally:
        await exchange.aclose()

    location = redirect_target(ctx, rewriter)
    logger.info(
        f"[Login] Password submission answered {exchange.response.status_code}, "
        f"redirecting to {location} with {len(cookies)} cookie(s)"
    )

    body = REDIRECT_PAGE.format(url=html.escape(location, quote=True)).encode("utf-8")
    headers = [("location", location), ("content-type", "text/html; charset=utf-8")]
    headers.extend(
        ("set-cookie", cookie)
        for cookie in rewrite_set_cookie(cookies, ctx, strip_domain=True)
    )
    headers.append(("content-length", str(len(body))))
    return build_response(302, httpx.Headers(headers), body)
