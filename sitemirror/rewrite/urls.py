"""
Pattern-based rewriting of backend-origin references in text bodies.

The rewriter is compiled once per backend origin and applied per request with
a :class:`RewriteContext`. Every pass is anchored on a URL delimiter in front of
the host (``scheme://``, ``//``, an attribute or ``url(`` quote) and refuses to
match when the host is followed by another host character, so unrelated hosts
that merely contain the backend hostname are left alone.

Rewritten URLs never match the backend patterns again, which makes
``rewrite(rewrite(text)) == rewrite(text)``.
"""

import re
from dataclasses import dataclass
from typing import Callable, Tuple
from urllib.parse import quote

from sitemirror.models import RewriteContext

# Host must not continue into a longer hostname, a subdomain or a port
HOST_END = r"(?![\w.:-])"


@dataclass(frozen=True)
class RewritePass:
    name: str
    pattern: re.Pattern
    replace: Callable[[re.Match, RewriteContext], str]

    def apply(self, text: str, ctx: RewriteContext) -> str:
        return self.pattern.sub(lambda m: self.replace(m, ctx), text)


def _escape_slashes(value: str) -> str:
    return value.replace("/", "\\/")


class UrlRewriter:
    """Replaces references to ``backend_origin`` with the proxy origin."""

    def __init__(self, backend_origin: str):
        self.backend_origin = backend_origin.rstrip("/")
        self.backend_host = self.backend_origin.split("://", 1)[-1].lower()
        self.passes = self._compile_passes(re.escape(self.backend_host))
        self._encoded_origin = re.compile(
            r"https?%3A%2F%2F" + re.escape(quote(self.backend_host, safe="")) + r"(?![\w.-]|%3A)",
            re.IGNORECASE,
        )

    @staticmethod
    def _compile_passes(host: str) -> Tuple[RewritePass, ...]:
        flags = re.IGNORECASE
        return (
            RewritePass(
                "absolute",
                re.compile(rf"(?<![\w.+-])https?://{host}{HOST_END}", flags),
                lambda m, ctx: ctx.proxy_origin,
            ),
            RewritePass(
                "protocol_relative",
                re.compile(rf"(?<![\w:/\\])//{host}{HOST_END}", flags),
                lambda m, ctx: f"//{ctx.proxy_host}",
            ),
            RewritePass(
                "attribute",
                re.compile(
                    rf"(?<![\w-])(?P<attr>data-src|href|src|action)(?P<eq>\s*=\s*)"
                    rf"(?P<quote>[\"']?){host}{HOST_END}",
                    flags,
                ),
                lambda m, ctx: f"{m.group('attr')}{m.group('eq')}{m.group('quote')}{ctx.proxy_origin}",
            ),
            RewritePass(
                "css_url",
                re.compile(rf"(?P<open>url\(\s*)(?P<quote>[\"']?){host}{HOST_END}", flags),
                lambda m, ctx: f"{m.group('open')}{m.group('quote')}{ctx.proxy_origin}",
            ),
            # JSON encoders that escape forward slashes: "https:\/\/host\/path"
            RewritePass(
                "json_absolute",
                re.compile(rf"(?<![\w.+-])https?:\\/\\/{host}{HOST_END}", flags),
                lambda m, ctx: _escape_slashes(ctx.proxy_origin),
            ),
            RewritePass(
                "json_protocol_relative",
                re.compile(rf"(?<![\w:/\\])\\/\\/{host}{HOST_END}", flags),
                lambda m, ctx: f"\\/\\/{ctx.proxy_host}",
            ),
        )

    def mentions_backend(self, text: str) -> bool:
        return self.backend_host in text.lower()

    def rewrite(self, text: str, ctx: RewriteContext) -> str:
        if not text or not self.mentions_backend(text):
            return text
        for rewrite_pass in self.passes:
            text = rewrite_pass.apply(text, ctx)
        return text

    def rewrite_encoded(self, text: str, ctx: RewriteContext) -> str:
        """Rewrite percent-encoded origins such as ``redirect_to=https%3A%2F%2Fhost``."""
        return self._encoded_origin.sub(
            lambda m: quote(ctx.proxy_origin, safe=""), text
        )
