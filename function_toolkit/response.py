from __future__ import annotations

from typing import MutableMapping, Protocol

from starlette.datastructures import MutableHeaders
from starlette.responses import Response


class ResponseWriter(Protocol):
    """Outbound half of an HTTP exchange: headers, a status line and a body sink."""

    @property
    def headers(self) -> MutableMapping[str, str]: ...

    def write_header(self, status_code: int) -> None: ...

    def write(self, data: bytes) -> int: ...


class BufferedResponseWriter:
    """Collects status, headers and body, then hands them to Starlette as one Response."""

    def __init__(self) -> None:
        self._headers = MutableHeaders()
        self._body = bytearray()
        self.status_code: int = 200
        self.started = False

    @property
    def headers(self) -> MutableHeaders:
        return self._headers

    def write_header(self, status_code: int) -> None:
        if self.started:
            return
        self.status_code = int(status_code)
        self.started = True

    def write(self, data: bytes) -> int:
        if not self.started:
            self.write_header(200)
        self._body.extend(data)
        return len(data)

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    def to_response(self) -> Response:
        response = Response(content=self.body, status_code=self.status_code)
        for key, value in self._headers.items():
            response.headers[key] = value
        return response
