"""
Process entry point.

Run:
  python -m mavenfixture

Then try:
  curl -i http://localhost:8080/
"""

from __future__ import annotations

import logging
import os
import sys

import anyio

from .app import create_server
from .config import ConfigurationError, Settings, load_settings
from .http import ListenerBindFailure


logger = logging.getLogger("mavenfixture")


async def serve(settings: Settings) -> None:
    async with create_server(settings) as server:
        print(f"\nRunning at http://localhost:{server.port}/\n", flush=True)
        await server.serve_forever()


def main() -> int:
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        settings = load_settings()
        anyio.run(serve, settings)
    except (ConfigurationError, ListenerBindFailure) as e:
        print(f"Couldn't start server: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted, shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
