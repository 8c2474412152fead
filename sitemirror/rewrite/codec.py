"""
Content-coding adapter for response bodies.

Decodes a body according to its ``Content-Encoding`` so it can be rewritten as
text, then re-encodes the result with the same coding. All functions are pure
transforms over byte buffers; the ``*_async`` variants push the work onto the
threadpool so large payloads never stall the event loop.
"""

import gzip
import logging
import zlib
from typing import Optional, Union

import brotli
from fastapi.concurrency import run_in_threadpool

from sitemirror.models import Encoding

logger = logging.getLogger("uvicorn.error")

ENCODING_ALIASES = {
    "": Encoding.NONE,
    "identity": Encoding.NONE,
    "none": Encoding.NONE,
    "gzip": Encoding.GZIP,
    "x-gzip": Encoding.GZIP,
    "deflate": Encoding.DEFLATE,
    "br": Encoding.BROTLI,
    "brotli": Encoding.BROTLI,
}


class CodecError(Exception):
    def __init__(self, encoding: Encoding, message: str):
        super().__init__(f"{encoding.value}: {message}")
        self.encoding = encoding


class DecodeFailed(CodecError):
    pass


class EncodeFailed(CodecError):
    pass


def is_supported_encoding(header_value: Optional[str]) -> bool:
    return (header_value or "").strip().lower() in ENCODING_ALIASES


def resolve_encoding(header_value: Union[Encoding, str, None]) -> Encoding:
    """Map a ``Content-Encoding`` value to an :class:`Encoding`.

    Unsupported or stacked codings resolve to ``Encoding.NONE`` with a warning.
    """
    if isinstance(header_value, Encoding):
        return header_value
    normalized = (header_value or "").strip().lower()
    encoding = ENCODING_ALIASES.get(normalized)
    if encoding is None:
        logger.warning(f"[Codec] Unsupported content-encoding {header_value!r}, treating as identity")
        return Encoding.NONE
    return encoding


def _decode_gzip(content: bytes) -> bytes:
    return gzip.decompress(content)


def _encode_gzip(content: bytes) -> bytes:
    # mtime=0 keeps the output deterministic for identical input
    return gzip.compress(content, mtime=0)


def _decode_deflate(content: bytes) -> bytes:
    # Some servers send raw DEFLATE without the zlib header and checksum
    try:
        return zlib.decompress(content)
    except zlib.error:
        return zlib.decompress(content, -zlib.MAX_WBITS)


def _encode_deflate(content: bytes) -> bytes:
    return zlib.compress(content)


_DECODERS = {
    Encoding.NONE: lambda content: content,
    Encoding.GZIP: _decode_gzip,
    Encoding.DEFLATE: _decode_deflate,
    Encoding.BROTLI: brotli.decompress,
}

_ENCODERS = {
    Encoding.NONE: lambda content: content,
    Encoding.GZIP: _encode_gzip,
    Encoding.DEFLATE: _encode_deflate,
    Encoding.BROTLI: brotli.compress,
}


def decode(body: bytes, encoding: Union[Encoding, str, None]) -> bytes:
    """
    Decompress ``body``.

    Raises:
        DecodeFailed: if the stream is corrupt or truncated.
    """
    encoding = resolve_encoding(encoding)
    try:
        return _DECODERS[encoding](body)
    except Exception as e:
        raise DecodeFailed(
            encoding, f"{type(e).__name__} when decoding {body[:10]!r}"
        ) from e


def encode(body: bytes, encoding: Union[Encoding, str, None]) -> bytes:
    """
    Compress ``body``.

    Raises:
        EncodeFailed: if the compressor rejects the input.
    """
    encoding = resolve_encoding(encoding)
    try:
        return _ENCODERS[encoding](body)
    except Exception as e:
        raise EncodeFailed(
            encoding, f"{type(e).__name__} when encoding {body[:10]!r}"
        ) from e


async def decode_async(body: bytes, encoding: Union[Encoding, str, None]) -> bytes:
    encoding = resolve_encoding(encoding)
    if encoding is Encoding.NONE:
        return body
    return await run_in_threadpool(decode, body, encoding)


async def encode_async(body: bytes, encoding: Union[Encoding, str, None]) -> bytes:
    encoding = resolve_encoding(encoding)
    if encoding is Encoding.NONE:
        return body
    return await run_in_threadpool(encode, body, encoding)
