"""Listen address resolution.

The fixture listens on all interfaces, port 8080. Container runtimes that
launch it may pass PORT in the environment, which takes precedence when set.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping


DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080


class ConfigurationError(ValueError):
    """Raised when an environment override is not usable."""


@dataclass(frozen=True, slots=True)
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


def _parse_port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise ConfigurationError(f"PORT must be an integer, got {value!r}") from None
    if not 0 <= port <= 65535:
        raise ConfigurationError(f"PORT out of range: {port}")
    return port


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Build settings from the environment.

    Only PORT is read; an empty value is treated as unset.
    """
    env = os.environ if environ is None else environ
    raw_port = env.get("PORT")
    port = _parse_port(raw_port.strip()) if raw_port else DEFAULT_PORT
    return Settings(port=port)
