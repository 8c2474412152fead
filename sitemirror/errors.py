class ProxyError(Exception):
    """Failure surfaced to the client with a synthesized error response."""

    status_code = 502
    error = "Proxy error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BackendUnreachable(ProxyError):
    status_code = 502
    error = "Bad gateway"


class BackendTimeout(ProxyError):
    status_code = 504
    error = "Gateway timeout"


class ResponseTooLarge(ProxyError):
    status_code = 502
    error = "Upstream response too large"


class ClientDisconnected(Exception):
    """The client went away before the response could be emitted."""
