"""
Streaming lane for API-style paths (``PASSTHROUGH_PREFIXES``).

Bodies are relayed chunk by chunk with their original content coding so
server-sent events and long completions reach the client as they are
produced. Only headers are rewritten.
"""

import logging

from fastapi.responses import StreamingResponse

from sitemirror.config import ProxyConfig
from sitemirror.models import RewriteContext
from sitemirror.proxy.interceptor import relay_response
from sitemirror.proxy.upstream import UpstreamExchange
from sitemirror.rewrite.headers import rewrite_response_headers
from sitemirror.rewrite.urls import UrlRewriter

logger = logging.getLogger("uvicorn.error")


def passthrough_response(
    exchange: UpstreamExchange,
    config: ProxyConfig,
    rewriter: UrlRewriter,
    ctx: RewriteContext,
) -> StreamingResponse:
    upstream = exchange.response
    logger.info(
        f"[Passthrough] Status {upstream.status_code}, content-type: "
        f"{upstream.headers.get('content-type', 'unknown')}"
    )
    headers = rewrite_response_headers(upstream.headers, ctx, rewriter, config)
    return relay_response(upstream.status_code, headers, exchange)
