"""
Logging setup for tablewright.
"""

import logging
from logging.handlers import RotatingFileHandler

from .config import LoggingConfig


def setup_logging(config: LoggingConfig, debug: bool = False) -> None:
    """Configure the root logger from a LoggingConfig."""
    level = logging.DEBUG if debug else getattr(logging, config.level)
    formatter = logging.Formatter(config.format)

    root = logging.getLogger()
    root.setLevel(level)

    # Replace handlers from a previous call
    for handler in list(root.handlers):
        root.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if config.file:
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_size,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # asyncpg is chatty at DEBUG
    logging.getLogger("asyncpg").setLevel(max(level, logging.INFO))
