"""HTTP transport for the fixture.

A small HTTP/1.1 server implemented with AnyIO sockets that hands every
request to a plain async handler function.
"""

from .server import Handler, HttpRequest, HttpResponse, HttpServer, ListenerBindFailure

__all__ = [
    "Handler",
    "HttpRequest",
    "HttpResponse",
    "HttpServer",
    "ListenerBindFailure",
]
