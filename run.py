#!/usr/bin/env python3
"""Start the hxengine companion demo server."""
import logging

import uvicorn

from hxengine.config import get_settings

logger = logging.getLogger("hxengine.run")


def main():
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Serving %s on http://%s:%d", settings.app_name, settings.host, settings.port)
    logger.info("Spinner demo delay: %.1fs", settings.spinner_delay_seconds)

    uvicorn.run(
        "hxengine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
