"""
Parsed view over a single ``Set-Cookie`` value.

``http.cookies.SimpleCookie`` drops attributes it does not know (``Partitioned``,
vendor flags) and re-quotes values, so cookies are split by hand here and
serialized back with every untouched attribute kept verbatim and in order.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

COOKIE_NAME_FORBIDDEN = set(' \t\r\n;,=()<>@:"/[]?{}\\')


class CookieParseError(ValueError):
    pass


@dataclass
class CookieAttributes:
    name: str
    value: str
    # (name, value-or-None) in their original order and spelling
    attributes: List[Tuple[str, Optional[str]]] = field(default_factory=list)

    @classmethod
    def parse(cls, raw: str) -> "CookieAttributes":
        parts = raw.split(";")
        pair = parts[0].strip()
        if "=" not in pair:
            raise CookieParseError(f"cookie has no name=value pair: {raw!r}")
        name, value = pair.split("=", 1)
        name = name.strip()
        if not name or any(ch in COOKIE_NAME_FORBIDDEN for ch in name):
            raise CookieParseError(f"invalid cookie name in {raw!r}")
        attributes = []
        for part in parts[1:]:
            part = part.strip()
            if not part:
                continue
            if "=" in part:
                attr, attr_value = part.split("=", 1)
                attributes.append((attr.strip(), attr_value.strip()))
            else:
                attributes.append((part, None))
        return cls(name=name, value=value.strip(), attributes=attributes)

    def _find(self, attr: str) -> Optional[Tuple[str, Optional[str]]]:
        for item in self.attributes:
            if item[0].lower() == attr:
                return item
        return None

    def _drop(self, attr: str) -> None:
        self.attributes = [a for a in self.attributes if a[0].lower() != attr]

    @property
    def domain(self) -> Optional[str]:
        item = self._find("domain")
        return item[1] if item else None

    @property
    def secure(self) -> bool:
        return self._find("secure") is not None

    @property
    def path(self) -> str:
        item = self._find("path")
        return item[1] if item and item[1] else "/"

    @property
    def has_path(self) -> bool:
        return self._find("path") is not None

    def strip_domain(self) -> None:
        self._drop("domain")

    def strip_secure(self) -> None:
        self._drop("secure")
        # Browsers reject SameSite=None without Secure
        same_site = self._find("samesite")
        if same_site and (same_site[1] or "").lower() == "none":
            self._drop("samesite")

    def ensure_path(self) -> None:
        if not self.has_path:
            self.attributes.append(("Path", "/"))

    def to_header(self) -> str:
        segments = [f"{self.name}={self.value}"]
        for attr, value in self.attributes:
            segments.append(attr if value is None else f"{attr}={value}")
        return "; ".join(segments)
