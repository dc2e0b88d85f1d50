"""The fixture application: every request gets the same 200 response."""

from __future__ import annotations

from .config import Settings
from .http import HttpRequest, HttpResponse, HttpServer


BODY = "Maven buildpack worked!"


async def handle(_req: HttpRequest) -> HttpResponse:
    return HttpResponse.text(BODY)


def create_server(settings: Settings | None = None, **options) -> HttpServer:
    """Wire `handle` into an HttpServer listening on `settings`.

    Requests the transport cannot parse are answered by `handle` as well, so
    method, path, headers and body never change the response.
    """
    settings = settings or Settings()
    return HttpServer(
        handle,
        host=settings.host,
        port=settings.port,
        on_error=handle,
        **options,
    )
