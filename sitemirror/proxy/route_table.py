"""
Declarative routing: which proxy lane handles a request path.

Decisions depend only on the path (and, for the login lane, the query), never
on content-type or accept sniffing.
"""

from enum import Enum
from typing import Mapping, Tuple

from sitemirror.config import ProxyConfig


class RouteKind(str, Enum):
    PASSTHROUGH = "passthrough"
    LOGIN = "login"
    REWRITE = "rewrite"


def _matches_prefix(path: str, prefix: str) -> bool:
    # "/v1" covers "/v1" and "/v1/..." but not "/v10"
    return path == prefix or path.startswith(prefix + "/")


class RouteTable:
    def __init__(self, passthrough_prefixes: Tuple[str, ...], login_path: str):
        self.passthrough_prefixes = passthrough_prefixes
        self.login_path = login_path

    @classmethod
    def from_config(cls, config: ProxyConfig) -> "RouteTable":
        return cls(config.passthrough_prefixes, config.login_path)

    def classify(self, path: str) -> RouteKind:
        if path == self.login_path:
            return RouteKind.LOGIN
        if any(_matches_prefix(path, prefix) for prefix in self.passthrough_prefixes):
            return RouteKind.PASSTHROUGH
        return RouteKind.REWRITE


def is_login_submission(query: Mapping[str, str], config: ProxyConfig) -> bool:
    return query.get(config.login_action_param) == config.login_action_value
