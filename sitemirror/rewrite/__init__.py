from .codec import CodecError, DecodeFailed, EncodeFailed, decode, encode
from .cookies import CookieAttributes, CookieParseError
from .headers import rewrite_location, rewrite_set_cookie, strip_content_length
from .urls import UrlRewriter

__all__ = [
    "CodecError",
    "DecodeFailed",
    "EncodeFailed",
    "decode",
    "encode",
    "CookieAttributes",
    "CookieParseError",
    "rewrite_location",
    "rewrite_set_cookie",
    "strip_content_length",
    "UrlRewriter",
]
