"""
Process-wide proxy configuration.

The values come from ``sitemirror.vars`` (environment) once at startup and are
frozen into a :class:`ProxyConfig` that is handed to the application factory.
Nothing in the rewrite pipeline reads the environment directly.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple
from urllib.parse import urlsplit

from sitemirror import vars as env

VALID_SCHEMES = ("http", "https")
VALID_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


@dataclass(frozen=True)
class ProxyConfig:
    backend_origin: str
    listen_host: str = "0.0.0.0"
    listen_port: int = 3000
    proxy_scheme: Optional[str] = None
    passthrough_prefixes: Tuple[str, ...] = field(default_factory=tuple)
    login_path: str = "/wp-login.php"
    login_action_param: str = "action"
    login_action_value: str = "postpass"
    strip_cookie_domain: bool = True
    max_body_bytes: int = 50 * 1024 * 1024
    timeout_seconds: float = 300
    expose_error_details: bool = True
    log_level: str = "info"

    def __post_init__(self):
        parsed = urlsplit(self.backend_origin)
        if parsed.scheme not in VALID_SCHEMES or not parsed.netloc:
            raise ValueError(
                f"backend origin must be an absolute http(s) URL, got {self.backend_origin!r}"
            )
        # Keep only scheme://host[:port]; a trailing slash or path would break matching
        object.__setattr__(
            self, "backend_origin", f"{parsed.scheme}://{parsed.netloc}".lower()
        )
        if self.proxy_scheme and self.proxy_scheme not in VALID_SCHEMES:
            raise ValueError(f"proxy scheme must be http or https, got {self.proxy_scheme!r}")
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(f"unknown log level {self.log_level!r}")
        if self.max_body_bytes <= 0:
            raise ValueError("max_body_bytes must be positive")
        object.__setattr__(
            self,
            "passthrough_prefixes",
            tuple("/" + p.strip("/") for p in self.passthrough_prefixes if p.strip("/")),
        )

    @property
    def backend_host(self) -> str:
        """Host (and port, when present) of the mirrored origin."""
        return urlsplit(self.backend_origin).netloc


def load_proxy_config() -> ProxyConfig:
    """Build the configuration from the environment-derived values in ``sitemirror.vars``."""
    return ProxyConfig(
        backend_origin=env.TARGET_URL,
        listen_host=env.HOST,
        listen_port=env.PORT,
        proxy_scheme=env.PROXY_SCHEME or None,
        passthrough_prefixes=tuple(env.PASSTHROUGH_PREFIXES),
        login_path=env.LOGIN_PATH,
        login_action_param=env.LOGIN_ACTION_PARAM,
        login_action_value=env.LOGIN_ACTION_VALUE,
        strip_cookie_domain=env.STRIP_COOKIE_DOMAIN,
        max_body_bytes=env.MAX_BODY_BYTES,
        timeout_seconds=env.PROXY_TIMEOUT,
        expose_error_details=env.ENVIRONMENT != "production",
        log_level=env.LOG_LEVEL,
    )
