from typing import Callable, List, Optional, Sequence, Tuple

import httpx


def backend_response(
    status_code: int = 200,
    headers: Optional[Sequence[Tuple[str, str]]] = None,
    body: bytes = b"",
) -> httpx.Response:
    """
    Build a backend response whose body is still unread.

    ``httpx.Response(content=...)`` reads its body eagerly, which rules out
    ``aiter_raw``; wrapping the bytes in a stream keeps them on the wire.
    """
    headers = list(headers or [])
    if not any(k.lower() == "content-length" for k, _ in headers):
        headers.append(("content-length", str(len(body))))
    return httpx.Response(status_code, headers=headers, stream=httpx.ByteStream(body))


class FakeBackend:
    """Records every request it receives and answers with a canned response."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._responder: Callable[[httpx.Request], httpx.Response] = (
            lambda request: backend_response(200, [("content-type", "text/plain")], b"ok")
        )

    def respond_with(
        self,
        status_code: int = 200,
        headers: Optional[Sequence[Tuple[str, str]]] = None,
        body: bytes = b"",
    ) -> None:
        self._responder = lambda request: backend_response(status_code, headers, body)

    def fail_with(self, exc: Exception) -> None:
        def _raise(request: httpx.Request) -> httpx.Response:
            raise exc

        self._responder = _raise

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)
