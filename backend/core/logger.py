# backend/core/logger.py
import logging
import sys
from pathlib import Path

from core.config import Settings


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(settings: Settings) -> None:
    """
    Configure the root logger.

    Always logs to stdout. When LOG_FILE is set, a file handler with source
    locations is added as well.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if settings.LOG_FILE:
        log_file = Path(settings.LOG_FILE)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(message)s",
            datefmt=DATE_FORMAT,
        ))
        root_logger.addHandler(file_handler)

    root_logger.info("Logging initialized (level=%s, file=%s)", settings.LOG_LEVEL, settings.LOG_FILE)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
