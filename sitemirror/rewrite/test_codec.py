import gzip
import logging
import zlib
from unittest.mock import patch

import brotli
import pytest

from sitemirror.models import Encoding
from sitemirror.rewrite import codec
from sitemirror.rewrite.codec import (
    DecodeFailed,
    EncodeFailed,
    decode,
    decode_async,
    encode,
    encode_async,
    is_supported_encoding,
    resolve_encoding,
)

PAGE = (
    b'<html><body><a href="https://origin.example/x">x</a>'
    + "café".encode("utf-8")
    + b"</body></html>"
)


@pytest.mark.parametrize(
    "encoding", [Encoding.NONE, Encoding.GZIP, Encoding.DEFLATE, Encoding.BROTLI]
)
def test_round_trip(encoding):
    assert decode(encode(PAGE, encoding), encoding) == PAGE


def test_identity_is_a_no_op():
    assert encode(PAGE, Encoding.NONE) is PAGE
    assert decode(PAGE, "identity") is PAGE


def test_decodes_what_other_compressors_produce():
    assert decode(gzip.compress(PAGE), "gzip") == PAGE
    assert decode(zlib.compress(PAGE), "deflate") == PAGE
    assert decode(brotli.compress(PAGE), "br") == PAGE


def test_raw_deflate_without_zlib_header():
    compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
    raw = compressor.compress(PAGE) + compressor.flush()

    assert decode(raw, Encoding.DEFLATE) == PAGE


def test_gzip_output_is_deterministic():
    assert encode(PAGE, Encoding.GZIP) == encode(PAGE, Encoding.GZIP)


@pytest.mark.parametrize("encoding", [Encoding.GZIP, Encoding.DEFLATE, Encoding.BROTLI])
def test_corrupt_stream_raises_decode_failed(encoding):
    with pytest.raises(DecodeFailed) as exc_info:
        decode(b"definitely not compressed", encoding)

    assert exc_info.value.encoding is encoding


def test_truncated_gzip_raises_decode_failed():
    truncated = gzip.compress(PAGE)[:-8]

    with pytest.raises(DecodeFailed):
        decode(truncated, Encoding.GZIP)


def test_encoder_failure_raises_encode_failed():
    def boom(content):
        raise MemoryError("out of memory")

    with patch.dict(codec._ENCODERS, {Encoding.BROTLI: boom}):
        with pytest.raises(EncodeFailed) as exc_info:
            encode(PAGE, Encoding.BROTLI)

    assert "MemoryError" in str(exc_info.value)


class TestResolveEncoding:
    @pytest.mark.parametrize(
        "header,expected",
        [
            (None, Encoding.NONE),
            ("", Encoding.NONE),
            ("identity", Encoding.NONE),
            ("GZIP", Encoding.GZIP),
            ("x-gzip", Encoding.GZIP),
            (" deflate ", Encoding.DEFLATE),
            ("br", Encoding.BROTLI),
        ],
    )
    def test_known_values(self, header, expected):
        assert resolve_encoding(header) is expected
        assert is_supported_encoding(header)

    def test_unknown_encoding_is_identity_with_warning(self, uvicorn_logs):
        assert resolve_encoding("zstd") is Encoding.NONE
        assert not is_supported_encoding("zstd")
        assert any(
            r.levelno == logging.WARNING and "zstd" in r.getMessage()
            for r in uvicorn_logs.records
        )

    def test_stacked_encodings_are_not_supported(self):
        assert not is_supported_encoding("gzip, br")

    def test_unknown_encoding_decodes_as_identity(self):
        assert decode(PAGE, "compress") == PAGE


@pytest.mark.asyncio
async def test_async_round_trip_runs_in_threadpool():
    compressed = await encode_async(PAGE, Encoding.GZIP)
    assert compressed != PAGE
    assert await decode_async(compressed, Encoding.GZIP) == PAGE


@pytest.mark.asyncio
async def test_async_decode_failure_propagates():
    with pytest.raises(DecodeFailed):
        await decode_async(b"junk", Encoding.BROTLI)


@pytest.mark.asyncio
async def test_async_identity_skips_threadpool():
    with patch("sitemirror.rewrite.codec.run_in_threadpool") as threadpool:
        assert await encode_async(PAGE, Encoding.NONE) is PAGE
        threadpool.assert_not_called()
