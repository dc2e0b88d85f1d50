"""Raw-socket HTTP helpers shared by the test modules."""

from contextlib import asynccontextmanager

import anyio

from mavenfixture import HttpServer


@asynccontextmanager
async def running(server: HttpServer):
    """Bind `server`, serve it in the background, close it on exit."""
    async with server:
        async with anyio.create_task_group() as tg:
            tg.start_soon(server.serve_forever)
            yield server
            tg.cancel_scope.cancel()


async def exchange(port: int, raw: bytes) -> bytes:
    """Send raw request bytes and read until the server closes."""
    async with await anyio.connect_tcp("127.0.0.1", port) as stream:
        if raw:
            await stream.send(raw)
        await stream.send_eof()
        chunks = []
        while True:
            try:
                chunks.append(await stream.receive())
            except anyio.EndOfStream:
                break
        return b"".join(chunks)


def parse_response(data: bytes) -> tuple[int, dict[str, str], bytes]:
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("iso-8859-1").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        k, v = line.split(":", 1)
        headers[k.strip().lower()] = v.strip()
    return status, headers, body


async def request(port: int, method: str = "GET", path: str = "/", body: bytes = b"", headers=None):
    lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
    for k, v in (headers or {}).items():
        lines.append(f"{k}: {v}")
    if body:
        lines.append(f"Content-Length: {len(body)}")
    raw = ("\r\n".join(lines) + "\r\n\r\n").encode("ascii") + body
    return parse_response(await exchange(port, raw))
