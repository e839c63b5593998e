from __future__ import annotations

import logging

from txflow.config import LoggingConfig

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Root handler at the configured level; noisy library loggers stay at WARNING or above."""
    config = config or LoggingConfig()
    logging.basicConfig(level=config.level, format=LOG_FORMAT)
    quiet_level = max(logging.WARNING, logging.getLevelName(config.level))
    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(quiet_level)
