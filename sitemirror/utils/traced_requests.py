import logging
from contextlib import contextmanager

from opentelemetry.trace import Tracer

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_request(
    tracer: Tracer,
    operation: str,
    method: str,
    target_url: str,
    route_kind: str,
):
    """Context manager to create a span, set common attributes, and log a start message."""
    with tracer.start_as_current_span(operation) as span:
        span.set_attribute("proxy.method", method)
        span.set_attribute("proxy.target_url", target_url)
        span.set_attribute("proxy.route", route_kind)
        logger.info(f"[Proxy] {method} {target_url} ({route_kind})")
        yield span
