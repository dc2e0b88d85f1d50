"""Tiny HTTP/1.1 server built on AnyIO.

Incoming requests are parsed into `HttpRequest` values and passed to a plain
async handler function; whatever `HttpResponse` it returns is written back
with a fixed Content-Length.

Features:
- HTTP/1.1 request line + headers parsing
- Optional Content-Length body (no chunked encoding)
- One request per connection (Connection: close)
- Per-connection read timeout
- Fully AnyIO, one task per connection via listener.serve()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

import anyio
from anyio.abc import SocketAttribute, SocketStream
from typing_extensions import Self


logger = logging.getLogger(__name__)

HeaderMap = dict[str, str]
Handler = Callable[["HttpRequest"], Awaitable["HttpResponse"]]


class ListenerBindFailure(Exception):
    """Raised when the TCP listener cannot be bound."""

    def __init__(self, host: str, port: int, error: OSError):
        self.host = host
        self.port = port
        self.error = error
        reason = error.strerror or str(error)
        super().__init__(f"cannot bind {host}:{port}: {reason}")


@dataclass(frozen=True, slots=True)
class HttpRequest:
    method: str
    path: str
    version: str
    headers: HeaderMap = field(default_factory=dict)
    body: bytes = b""


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int = 200
    headers: Mapping[str, str] | None = None
    body: bytes = b""

    @staticmethod
    def text(
        text: str,
        *,
        status: int = 200,
        headers: Mapping[str, str] | None = None,
        encoding: str = "utf-8",
    ) -> "HttpResponse":
        body = text.encode(encoding)
        merged: dict[str, str] = {"content-type": f"text/plain; charset={encoding}"}
        if headers:
            merged.update({k.lower(): v for k, v in headers.items()})
        return HttpResponse(status=status, headers=merged, body=body)


_STATUS_TEXT: dict[int, str] = {
    200: "OK",
    204: "No Content",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    413: "Payload Too Large",
    500: "Internal Server Error",
}

_UNPARSED = HttpRequest(method="", path="", version="")


class _RequestRejected(Exception):
    """A request the transport refuses before it reaches the handler."""

    def __init__(self, status: int, reason: str, request: HttpRequest = _UNPARSED):
        super().__init__(reason)
        self.status = status
        self.request = request


def _status_line(status: int) -> str:
    text = _STATUS_TEXT.get(status, "OK")
    return f"HTTP/1.1 {status} {text}\r\n"


def _normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    return {k.lower(): v for k, v in headers.items()}


async def _read_until(
    stream: SocketStream, marker: bytes, max_bytes: int
) -> tuple[bytes, bytes]:
    """Read up to and including `marker`; also return any bytes received past it."""
    buf = bytearray()
    while True:
        idx = buf.find(marker)
        if idx != -1:
            if idx > max_bytes:
                raise _RequestRejected(400, "request header too large")
            end = idx + len(marker)
            return bytes(buf[:end]), bytes(buf[end:])
        if len(buf) > max_bytes:
            raise _RequestRejected(400, "request header too large")
        try:
            chunk = await stream.receive(4096)
        except anyio.EndOfStream:
            return bytes(buf), b""
        if not chunk:
            return bytes(buf), b""
        buf.extend(chunk)


def _parse_headers(block: bytes) -> tuple[str, str, str, HeaderMap]:
    # block contains request line + headers ending with \r\n\r\n
    head = block.decode("iso-8859-1")

    lines = head.split("\r\n")
    if not lines or not lines[0]:
        raise _RequestRejected(400, "missing request line")

    parts = lines[0].split(" ")
    if len(parts) != 3:
        raise _RequestRejected(400, "invalid request line")
    method, path, version = parts

    headers: HeaderMap = {}
    for line in lines[1:]:
        if line == "":
            break
        if ":" not in line:
            continue
        k, v = line.split(":", 1)
        headers[k.strip().lower()] = v.strip()
    return method, path, version, headers


async def _read_exact(stream: SocketStream, n: int, prefix: bytes = b"") -> bytes:
    buf = bytearray(prefix[:n])
    while len(buf) < n:
        try:
            chunk = await stream.receive(n - len(buf))
        except anyio.EndOfStream:
            break
        if not chunk:
            break
        buf.extend(chunk)
    return bytes(buf)


async def _discard(stream: SocketStream, n: int) -> None:
    # Closing with unread bytes makes the kernel reset the connection,
    # so a refused body is still consumed before answering.
    while n > 0:
        try:
            chunk = await stream.receive(min(n, 64 * 1024))
        except anyio.EndOfStream:
            return
        n -= len(chunk)


async def _write_response(
    stream: SocketStream, response: HttpResponse, *, head_only: bool = False
) -> None:
    headers = _normalize_headers(response.headers)
    body = response.body or b""

    headers.setdefault("content-length", str(len(body)))
    headers.setdefault("connection", "close")

    start = _status_line(response.status).encode("ascii")
    head = b"".join(f"{k}: {v}\r\n".encode("ascii") for k, v in headers.items())

    # HEAD responses carry the headers of the full response but no body.
    if head_only:
        body = b""
    await stream.send(start + head + b"\r\n" + body)


class HttpServer:
    """HTTP server owning a single TCP listener.

    - bind() acquires the listener, aclose() releases it
    - serve_forever() accepts connections until cancelled, one task each
    - every parsed request is passed to `handler`

    When `on_error` is given, requests the transport would otherwise reject
    (malformed head, oversized header or body) are answered by calling it with
    whatever could be parsed instead of a canned 400/413.

    Usable as an async context manager:

        async with HttpServer(handler, port=8080) as server:
            await server.serve_forever()
    """

    def __init__(
        self,
        handler: Handler,
        *,
        host: str = "0.0.0.0",
        port: int = 8080,
        on_error: Handler | None = None,
        max_header_bytes: int = 64 * 1024,
        max_body_bytes: int = 1 * 1024 * 1024,
        read_timeout: float = 30.0,
    ):
        self._handler = handler
        self._on_error = on_error
        self._host = host
        self._port = port
        self._max_header_bytes = max_header_bytes
        self._max_body_bytes = max_body_bytes
        self._read_timeout = read_timeout
        # anyio.create_tcp_listener() may return a MultiListener depending on the host,
        # so this stays loosely typed.
        self._listener: Any = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        """The bound port (differs from the requested one when port=0)."""
        if self._listener is None:
            return self._port
        return self._listener.extra(SocketAttribute.local_port)

    @property
    def bound(self) -> bool:
        return self._listener is not None

    async def bind(self) -> None:
        if self._listener is not None:
            raise RuntimeError("HttpServer is already bound")
        try:
            self._listener = await anyio.create_tcp_listener(
                local_host=self._host, local_port=self._port
            )
        except OSError as e:
            raise ListenerBindFailure(self._host, self._port, e) from e
        logger.info("listening on %s:%d", self._host, self.port)

    async def aclose(self) -> None:
        if self._listener is None:
            return
        port = self.port
        listener, self._listener = self._listener, None
        await listener.aclose()
        logger.info("listener on %s:%d closed", self._host, port)

    async def __aenter__(self) -> Self:
        await self.bind()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def serve_forever(self) -> None:
        """Serve incoming connections until the surrounding scope is cancelled."""
        if self._listener is None:
            raise RuntimeError("HttpServer must be bound before serving")
        await self._listener.serve(self._handle_client)

    async def _read_request(self, stream: SocketStream) -> HttpRequest | None:
        header_block, rest = await _read_until(stream, b"\r\n\r\n", self._max_header_bytes)
        if not header_block:
            return None

        method, path, version, headers = _parse_headers(header_block)
        try:
            content_length = int(headers.get("content-length", "0") or "0")
        except ValueError:
            raise _RequestRejected(
                400, "invalid content-length", HttpRequest(method, path, version, headers)
            ) from None
        if content_length > self._max_body_bytes:
            await _discard(stream, content_length - len(rest))
            raise _RequestRejected(
                413, "payload too large", HttpRequest(method, path, version, headers)
            )

        body = b""
        if content_length > 0:
            body = await _read_exact(stream, content_length, rest)

        return HttpRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            body=body,
        )

    async def _call(self, handler: Handler, req: HttpRequest) -> HttpResponse:
        try:
            return await handler(req)
        except Exception as e:
            logger.exception("handler failed for %s %s", req.method, req.path)
            return HttpResponse.text(f"server error: {e!r}", status=500)

    async def _rejected(self, rejection: _RequestRejected) -> HttpResponse:
        if self._on_error is not None:
            return await self._call(self._on_error, rejection.request)
        return HttpResponse.text(str(rejection), status=rejection.status)

    async def _handle_client(self, stream: SocketStream) -> None:
        async with stream:
            try:
                try:
                    with anyio.fail_after(self._read_timeout):
                        req = await self._read_request(stream)
                except TimeoutError:
                    logger.debug("read timed out after %.1fs", self._read_timeout)
                    return
                except _RequestRejected as e:
                    logger.debug("rejected request: %s", e)
                    resp = await self._rejected(e)
                    await _write_response(stream, resp, head_only=e.request.method == "HEAD")
                    return
                if req is None:
                    return

                resp = await self._call(self._handler, req)
                logger.debug("%s %s -> %d", req.method, req.path, resp.status)
                await _write_response(stream, resp, head_only=req.method == "HEAD")
            except (anyio.BrokenResourceError, anyio.ClosedResourceError) as e:
                logger.debug("connection dropped: %r", e)
