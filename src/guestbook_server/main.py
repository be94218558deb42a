"""Main entry point for the guestbook server."""

import asyncio

from guestbook_server.api.server import run_server
from guestbook_server.config import get_settings
from guestbook_server.logging import get_logger, setup_logging


def main() -> None:
    """Load settings, configure logging and serve until interrupted."""
    settings = get_settings()
    setup_logging(settings)
    log = get_logger("guestbook_server.main")

    log.info(
        "starting_guestbook_server",
        environment=settings.environment,
        host=settings.host,
        port=settings.port,
    )

    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        log.info("guestbook_server_shutdown")


if __name__ == "__main__":
    main()
