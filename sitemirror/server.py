import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from sitemirror.config import ProxyConfig, load_proxy_config
from sitemirror.errors import ProxyError
from sitemirror.models import ErrorBody
from sitemirror.proxy.route import router
from sitemirror.proxy.route_table import RouteTable
from sitemirror.rewrite.urls import UrlRewriter
from sitemirror.telemetry import configure_tracing
from sitemirror.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from sitemirror.vars import METRICS_PATH, OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorBody(error=exc.error, message=exc.message).model_dump(),
    )


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log_exception_with_details(logger, f"[Server] {request.method} {request.url.path}", exc)
    config: ProxyConfig = request.app.state.proxy_config
    message = (
        format_exception_message(exc)
        if config.expose_error_details
        else "An internal error occurred"
    )
    return JSONResponse(
        status_code=500,
        content=ErrorBody(error="Internal Server Error", message=message).model_dump(),
    )


def create_app(
    config: Optional[ProxyConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the proxy application.

    ``config`` defaults to the environment; ``transport`` replaces the network
    transport used to reach the backend.
    """
    config = config or load_proxy_config()
    logger.info(f"Mirroring {config.backend_origin}")

    # Every path belongs to the mirrored site, so no docs or schema routes
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    app.state.proxy_config = config
    app.state.url_rewriter = UrlRewriter(config.backend_origin)
    app.state.route_table = RouteTable.from_config(config)
    app.state.upstream_transport = transport

    # Exposed before the catch-all route so it is not proxied
    Instrumentator().instrument(app).expose(app, endpoint=METRICS_PATH)
    configure_tracing(app, SERVICE_NAME, OTLP_ENDPOINT, OTLP_HEADERS)

    app.add_exception_handler(ProxyError, proxy_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)
    app.include_router(router)
    return app


app = create_app()
