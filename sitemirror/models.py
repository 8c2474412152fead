from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx
from fastapi import Request
from pydantic import BaseModel

from sitemirror.config import ProxyConfig

TEXTUAL_CONTENT_MARKERS = ("text", "json", "xml", "javascript", "css")


class Encoding(str, Enum):
    """Content codings the pipeline can decode and re-encode."""

    NONE = "identity"
    GZIP = "gzip"
    DEFLATE = "deflate"
    BROTLI = "br"


class ErrorBody(BaseModel):
    error: str
    message: str


def is_textual_content_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    lowered = content_type.lower()
    return any(marker in lowered for marker in TEXTUAL_CONTENT_MARKERS)


@dataclass(frozen=True)
class RewriteContext:
    """Per-request view of how the client reached the proxy."""

    proxy_scheme: str
    proxy_host: str
    referer_override: Optional[str] = None

    @property
    def proxy_origin(self) -> str:
        return f"{self.proxy_scheme}://{self.proxy_host}"

    @property
    def is_plaintext(self) -> bool:
        return self.proxy_scheme == "http"

    @classmethod
    def from_request(cls, request: Request, config: ProxyConfig) -> "RewriteContext":
        """
        Derive the proxy origin from the inbound request.

        The scheme is the configured one when set, otherwise the first
        ``X-Forwarded-Proto`` value (TLS usually terminates in front of us),
        otherwise the scheme of the ASGI connection.
        """
        scheme = config.proxy_scheme
        if not scheme:
            forwarded = request.headers.get("x-forwarded-proto", "")
            scheme = forwarded.split(",")[0].strip().lower()
        if scheme not in ("http", "https"):
            scheme = request.url.scheme
        host = request.headers.get("host") or request.url.netloc
        return cls(
            proxy_scheme=scheme,
            proxy_host=host,
            referer_override=request.headers.get("referer") or None,
        )


@dataclass
class InterceptedResponse:
    """A backend response held in memory while the rewrite pipeline runs."""

    status_code: int
    headers: httpx.Headers
    raw_body: bytes
    content_encoding: Encoding
    is_textual: bool

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")
