import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Request, Response
from opentelemetry import trace

from sitemirror.config import ProxyConfig
from sitemirror.errors import ClientDisconnected
from sitemirror.models import RewriteContext
from sitemirror.proxy.interceptor import ResponseInterceptor
from sitemirror.proxy.login_flow import login_redirect_response
from sitemirror.proxy.passthrough import passthrough_response
from sitemirror.proxy.route_table import RouteKind, RouteTable, is_login_submission
from sitemirror.proxy.upstream import get_target_url, open_upstream
from sitemirror.rewrite.urls import UrlRewriter
from sitemirror.utils.traced_requests import traced_request

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Status used when the client hung up before we could answer
CLIENT_CLOSED_REQUEST = 499


def get_proxy_config(request: Request) -> ProxyConfig:
    return request.app.state.proxy_config


def get_url_rewriter(request: Request) -> UrlRewriter:
    return request.app.state.url_rewriter


def get_route_table(request: Request) -> RouteTable:
    return request.app.state.route_table


def get_upstream_transport(request: Request) -> Optional[httpx.AsyncBaseTransport]:
    return getattr(request.app.state, "upstream_transport", None)


async def forward_to_backend(
    request: Request,
    config: ProxyConfig,
    rewriter: UrlRewriter,
    route_table: RouteTable,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Response:
    """
    Forward one request to the backend and shape the answer for the client.

    Pass-through prefixes are streamed with header rewriting only, a password
    submission on the login path gets a synthesized redirect, and everything
    else goes through the response interceptor.
    """
    ctx = RewriteContext.from_request(request, config)
    kind = route_table.classify(request.url.path)
    target_url = get_target_url(request, config)

    with traced_request(tracer, "proxy_request", request.method, target_url, kind.value) as span:
        exchange = await open_upstream(
            request,
            config,
            ctx,
            identity_encoding=kind is not RouteKind.PASSTHROUGH,
            transport=transport,
        )
        span.set_attribute("proxy.status_code", exchange.response.status_code)
        try:
            if kind is RouteKind.PASSTHROUGH:
                return passthrough_response(exchange, config, rewriter, ctx)
            if kind is RouteKind.LOGIN and is_login_submission(request.query_params, config):
                return await login_redirect_response(exchange, config, rewriter, ctx)

            interceptor = ResponseInterceptor(config, rewriter, ctx, request.is_disconnected)
            response = await interceptor.intercept(exchange)
            span.set_attribute("proxy.intercept_state", interceptor.state.value)
            return response
        except ClientDisconnected:
            await exchange.aclose()
            logger.info(f"[Proxy] Client disconnected while buffering {target_url}")
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        except Exception:
            await exchange.aclose()
            raise


# Register catch-all route for proxying
@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"],
)
async def proxy_all(
    request: Request,
    path: str,
    config: ProxyConfig = Depends(get_proxy_config),
    rewriter: UrlRewriter = Depends(get_url_rewriter),
    route_table: RouteTable = Depends(get_route_table),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_upstream_transport),
):
    """Catch-all route that proxies all requests to the backend."""
    return await forward_to_backend(request, config, rewriter, route_table, transport)


async def proxy_any_method(request: Request) -> Response:
    """Proxy methods outside the list above (WebDAV verbs, PURGE, TRACE, ...)."""
    return await forward_to_backend(
        request,
        get_proxy_config(request),
        get_url_rewriter(request),
        get_route_table(request),
        get_upstream_transport(request),
    )


# No method filter: anything the typed route does not take still reaches the backend
router.add_route("/{path:path}", proxy_any_method, include_in_schema=False)
