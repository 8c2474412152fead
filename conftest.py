import logging

import pytest
from fastapi.testclient import TestClient

from sitemirror.config import ProxyConfig
from sitemirror.models import RewriteContext
from sitemirror.rewrite.urls import UrlRewriter
from sitemirror.utils_tests.fake_backend import FakeBackend

BACKEND_ORIGIN = "https://origin.example"
PROXY_BASE_URL = "http://proxyhost"


@pytest.fixture
def proxy_config():
    return ProxyConfig(
        backend_origin=BACKEND_ORIGIN,
        passthrough_prefixes=("/v1",),
        max_body_bytes=1024 * 1024,
        timeout_seconds=5,
    )


@pytest.fixture
def rewriter():
    return UrlRewriter(BACKEND_ORIGIN)


@pytest.fixture
def plain_ctx():
    """Client reached the proxy over plain HTTP at proxyhost."""
    return RewriteContext(proxy_scheme="http", proxy_host="proxyhost")


@pytest.fixture
def tls_ctx():
    return RewriteContext(proxy_scheme="https", proxy_host="mirror.example")


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def make_client(fake_backend):
    """Build a TestClient for a proxy app talking to ``fake_backend``."""
    from sitemirror.server import create_app

    def _make(config: ProxyConfig) -> TestClient:
        app = create_app(config, transport=fake_backend.transport)
        return TestClient(
            app,
            base_url=PROXY_BASE_URL,
            raise_server_exceptions=False,
            follow_redirects=False,
        )

    return _make


@pytest.fixture
def client(make_client, proxy_config):
    with make_client(proxy_config) as test_client:
        yield test_client


@pytest.fixture
def uvicorn_logs(caplog):
    """Capture records from the "uvicorn.error" logger even when uvicorn disabled propagation."""
    uvicorn_logger = logging.getLogger("uvicorn.error")
    orig_propagate = uvicorn_logger.propagate
    uvicorn_logger.propagate = True
    try:
        with caplog.at_level(logging.DEBUG, logger="uvicorn.error"):
            yield caplog
    finally:
        uvicorn_logger.propagate = orig_propagate
