"""
Coin Kiosk - Main entry point.

Builds the kiosk engine from settings and serves its HTTP and WebSocket
API with uvicorn.
"""

import uvicorn

from kiosk.api.app import create_app
from kiosk.application.kiosk_facade import KioskFacade
from kiosk.infrastructure.settings import get_settings
from kiosk.loggers import logger


# =============================================================================
# Main Entry Point
# =============================================================================


def main() -> None:
    """
    Main entry point for the kiosk service.

    Serial, ledger and printing behaviour come from ``KIOSK_*``
    environment variables.
    """
    settings = get_settings()
    app = create_app(KioskFacade(settings))

    logger.info(
        f"Starting kiosk on {settings.server.host}:{settings.server.port} "
        f"(ledger: {settings.ledger.backend})"
    )
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
