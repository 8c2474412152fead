"""
Response interception for rewritable backend responses.

Per request the interceptor moves through::

    AWAITING_HEADERS -> BUFFERING_BODY -> CLASSIFIED -> REWRITING -> EMITTING -> DONE
           |
           +-> PASS_THROUGH   (binary bodies, streamed untouched)

Textual bodies are buffered completely before rewriting: decompression needs
the whole stream and a URL can straddle two chunks. Headers are rewritten on
every path because that never touches the body.
"""

import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional

import httpx
from fastapi import Response
from fastapi.responses import StreamingResponse
from opentelemetry import trace
from prometheus_client import Counter
from starlette.background import BackgroundTask

from sitemirror.config import ProxyConfig
from sitemirror.errors import (
    BackendTimeout,
    BackendUnreachable,
    ClientDisconnected,
    ResponseTooLarge,
)
from sitemirror.models import InterceptedResponse, RewriteContext, is_textual_content_type
from sitemirror.proxy.upstream import UpstreamExchange
from sitemirror.rewrite.codec import (
    DecodeFailed,
    EncodeFailed,
    decode_async,
    encode_async,
    is_supported_encoding,
    resolve_encoding,
)
from sitemirror.rewrite.headers import rewrite_response_headers, strip_content_length
from sitemirror.rewrite.urls import UrlRewriter

logger = logging.getLogger("uvicorn.error")

REWRITE_OUTCOMES = Counter(
    "mirror_rewrite_outcomes_total",
    "Outcome of response body interception",
    ["outcome"],
)


class InterceptState(str, Enum):
    AWAITING_HEADERS = "awaiting_headers"
    BUFFERING_BODY = "buffering_body"
    CLASSIFIED = "classified"
    REWRITING = "rewriting"
    EMITTING = "emitting"
    DONE = "done"
    PASS_THROUGH = "pass_through"


def _record_outcome(outcome: str) -> None:
    REWRITE_OUTCOMES.labels(outcome=outcome).inc()
    trace.get_current_span().set_attribute("proxy.rewrite_outcome", outcome)


def _charset(content_type: str) -> str:
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            return value.strip().strip("\"'")
    return "utf-8"


def _raw_headers(headers: httpx.Headers) -> list:
    return [
        (k.lower().encode("latin-1"), v.encode("latin-1"))
        for k, v in headers.multi_items()
    ]


def build_response(status_code: int, headers: httpx.Headers, body: bytes = b"") -> Response:
    """Build a response that carries ``headers`` verbatim, repeated names included."""
    response = Response(content=body, status_code=status_code)
    response.raw_headers = _raw_headers(headers)
    return response


async def relay_stream(exchange: UpstreamExchange) -> AsyncIterator[bytes]:
    """Yield the backend body as received and release the exchange afterwards."""
    try:
        async for chunk in exchange.response.aiter_raw():
            yield chunk
    except httpx.TransportError as e:
        # Status and headers are already on the wire; all we can do is stop
        logger.error(f"[Interceptor] Backend stream broke mid-response: {e}")
    finally:
        await exchange.aclose()


def relay_response(
    status_code: int, headers: httpx.Headers, exchange: UpstreamExchange
) -> StreamingResponse:
    """
    Stream the backend body to the client.

    A background task closes the exchange once the response is done, so it is
    released even when the body iterator never started.
    """
    response = StreamingResponse(
        relay_stream(exchange),
        status_code=status_code,
        background=BackgroundTask(exchange.aclose),
    )
    response.raw_headers = _raw_headers(headers)
    return response


class ResponseInterceptor:
    """Drives one backend response through the rewrite pipeline."""

    def __init__(
        self,
        config: ProxyConfig,
        rewriter: UrlRewriter,
        ctx: RewriteContext,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ):
        self.config = config
        self.rewriter = rewriter
        self.ctx = ctx
        self.is_disconnected = is_disconnected
        self.state = InterceptState.AWAITING_HEADERS

    async def intercept(self, exchange: UpstreamExchange) -> Response:
        upstream = exchange.response
        headers = rewrite_response_headers(upstream.headers, self.ctx, self.rewriter, self.config)

        if not is_textual_content_type(headers.get("content-type")):
            self.state = InterceptState.PASS_THROUGH
            _record_outcome("passthrough")
            return relay_response(upstream.status_code, headers, exchange)

        self.state = InterceptState.BUFFERING_BODY
        try:
            raw_body = await self.buffer_body(upstream)
        finally:
            await exchange.aclose()

        intercepted = InterceptedResponse(
            status_code=upstream.status_code,
            headers=headers,
            raw_body=raw_body,
            content_encoding=resolve_encoding(headers.get("content-encoding")),
            is_textual=True,
        )
        self.state = InterceptState.CLASSIFIED
        return await self.rewrite(intercepted)

    async def buffer_body(self, upstream: httpx.Response) -> bytes:
        limit = self.config.max_body_bytes
        declared = upstream.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            raise ResponseTooLarge(f"Backend response of {declared} bytes exceeds {limit}")

        buffer = bytearray()
        try:
            async for chunk in upstream.aiter_raw():
                buffer.extend(chunk)
                if len(buffer) > limit:
                    raise ResponseTooLarge(f"Backend response exceeds {limit} bytes")
                if self.is_disconnected is not None and await self.is_disconnected():
                    raise ClientDisconnected()
        except httpx.TimeoutException as e:
            raise BackendTimeout(f"Backend stalled while sending the body: {e}") from e
        except httpx.TransportError as e:
            raise BackendUnreachable(f"Backend connection lost while reading the body: {e}") from e
        return bytes(buffer)

    async def rewrite(self, intercepted: InterceptedResponse) -> Response:
        """Decode, rewrite and re-encode a buffered textual response."""
        raw_body = intercepted.raw_body
        if not raw_body:
            _record_outcome("empty")
            return self.emit(intercepted, raw_body)

        declared_encoding = intercepted.headers.get("content-encoding")
        if not is_supported_encoding(declared_encoding):
            logger.warning(
                f"[Interceptor] Passing body through, cannot decode content-encoding {declared_encoding!r}"
            )
            _record_outcome("unsupported_encoding")
            return self.emit(intercepted, raw_body)

        self.state = InterceptState.REWRITING
        encoding = intercepted.content_encoding
        charset = _charset(intercepted.content_type)
        try:
            plain = await decode_async(raw_body, encoding)
            text = self._decode_text(plain, charset)
        except (DecodeFailed, UnicodeError) as e:
            logger.warning(f"[Interceptor] Leaving body untouched, decode failed: {e}")
            _record_outcome("decode_failed")
            return self.emit(intercepted, raw_body)

        rewritten = self.rewriter.rewrite(text, self.ctx)
        if rewritten == text:
            _record_outcome("unchanged")
            return self.emit(intercepted, raw_body)

        new_plain = self._encode_text(rewritten, charset)
        strip_content_length(intercepted.headers)
        try:
            body = await encode_async(new_plain, encoding)
        except EncodeFailed as e:
            logger.warning(f"[Interceptor] Sending rewritten body uncompressed: {e}")
            intercepted.headers.pop("content-encoding", None)
            _record_outcome("encode_failed")
            return self.emit(intercepted, new_plain)

        _record_outcome("rewritten")
        return self.emit(intercepted, body)

    def emit(self, intercepted: InterceptedResponse, body: bytes) -> Response:
        self.state = InterceptState.EMITTING
        if body:
            intercepted.headers["content-length"] = str(len(body))
        response = build_response(intercepted.status_code, intercepted.headers, body)
        self.state = InterceptState.DONE
        return response

    @staticmethod
    def _decode_text(plain: bytes, charset: str) -> str:
        try:
            return plain.decode(charset, errors="surrogateescape")
        except LookupError:
            return plain.decode("utf-8", errors="surrogateescape")

    @staticmethod
    def _encode_text(text: str, charset: str) -> bytes:
        try:
            return text.encode(charset, errors="surrogateescape")
        except LookupError:
            return text.encode("utf-8", errors="surrogateescape")
