import sys

import uvicorn
from loguru import logger

from clinicbook.api.app import create_app
from clinicbook.config import AppConfig


def main() -> None:
    config = AppConfig()

    logger.remove()
    logger.add(sys.stderr, level=config.log_level.upper())

    logger.info(
        "Starting clinicbook API on {}:{} (storage={}, timezone={})",
        config.api.host,
        config.api.port,
        config.storage.backend.value,
        config.clinic_timezone,
    )
    app = create_app(config)
    uvicorn.run(app, host=config.api.host, port=config.api.port, log_level="warning")


if __name__ == "__main__":
    main()
