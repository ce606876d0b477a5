"""Run the gold feed with uvicorn: ``python -m app``."""

import logging
import sys

import uvicorn

from app.config import configure_logging, load_settings
from app.gold.errors import ConfigError
from app.main import create_app

logger = logging.getLogger("app")


def main() -> int:
    try:
        settings = load_settings()
        configure_logging(settings.log_level)
        app = create_app(settings)
    except ConfigError as e:
        logging.basicConfig()
        logger.critical("Invalid configuration: %s", e)
        return 1

    logger.info("Gold Futures Real-time API on http://%s:%d (WebSocket at /ws)", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
