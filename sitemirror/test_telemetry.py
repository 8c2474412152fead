from unittest.mock import Mock

from opentelemetry.sdk.trace.export import SpanExportResult

from sitemirror.telemetry import FilteringSpanExporter, _parse_headers


def make_span(attributes):
    span = Mock()
    span.attributes = attributes
    return span


class TestFilteringSpanExporter:
    def test_drops_response_body_spans(self):
        inner = Mock()
        inner.export.return_value = SpanExportResult.SUCCESS
        exporter = FilteringSpanExporter(inner)
        keep = make_span({"http.route": "/{path:path}"})
        body_chunk = make_span({"asgi.event.type": "http.response.body"})
        no_attrs = make_span(None)

        assert exporter.export([keep, body_chunk, no_attrs]) == SpanExportResult.SUCCESS
        inner.export.assert_called_once_with([keep, no_attrs])

    def test_nothing_left_skips_inner_exporter(self):
        inner = Mock()
        exporter = FilteringSpanExporter(inner)

        result = exporter.export([make_span({"asgi.event.type": "http.response.body"})])

        assert result == SpanExportResult.SUCCESS
        inner.export.assert_not_called()

    def test_delegates_lifecycle(self):
        inner = Mock()
        exporter = FilteringSpanExporter(inner)

        exporter.force_flush(1000)
        exporter.shutdown()

        inner.force_flush.assert_called_once_with(1000)
        inner.shutdown.assert_called_once_with()


def test_parse_headers():
    assert _parse_headers("api-key=abc, x-tenant = t1 ,broken,") == {"api-key": "abc", "x-tenant": "t1"}
    assert _parse_headers("") is None
