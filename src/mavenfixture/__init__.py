"""Minimal HTTP fixture application for buildpack acceptance tests."""

from .app import BODY, create_server, handle
from .config import ConfigurationError, Settings, load_settings
from .http import HttpRequest, HttpResponse, HttpServer, ListenerBindFailure

__all__ = [
    # Application
    "BODY",
    "handle",
    "create_server",
    # Configuration
    "Settings",
    "ConfigurationError",
    "load_settings",
    # HTTP
    "HttpRequest",
    "HttpResponse",
    "HttpServer",
    "ListenerBindFailure",
]
