from typing import Dict, Optional, Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)

_tracer_provider: Optional[TracerProvider] = None


def _parse_headers(raw: str) -> Optional[Dict[str, str]]:
    """Parse ``key=value,key2=value2`` as used by OTEL_EXPORTER_OTLP_HEADERS."""
    headers = {}
    for entry in raw.split(","):
        key, sep, value = entry.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers or None


class FilteringSpanExporter(SpanExporter):
    """
    Drops the per-chunk ``http.response.body`` spans the ASGI instrumentation
    emits for every relayed chunk of a streamed response.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing(
    app: FastAPI, service_name: str, otlp_endpoint: Optional[str], otlp_headers: str = ""
) -> None:
    """Install the tracer provider once per process and instrument ``app``."""
    global _tracer_provider
    if _tracer_provider is None:
        _tracer_provider = TracerProvider(
            resource=Resource.create({"service.name": service_name})
        )
        if otlp_endpoint:
            exporter = OTLPSpanExporter(
                endpoint=otlp_endpoint,
                headers=_parse_headers(otlp_headers),
            )
            _tracer_provider.add_span_processor(
                BatchSpanProcessor(FilteringSpanExporter(exporter))
            )
        trace.set_tracer_provider(_tracer_provider)

    FastAPIInstrumentor.instrument_app(app, tracer_provider=_tracer_provider)
