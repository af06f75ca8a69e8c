"""Logging configuration for the project."""
import logging
import sys
from pathlib import Path

from tilescope.config import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _default_level() -> str:
    return "DEBUG" if config.debug else "INFO"


def setup_logger(name: str = "tilescope", level: str | None = None, log_file: Path | None = None) -> logging.Logger:
    """Configure and return a logger with a standard format.

    Args:
        name: Logger name; child loggers (``tilescope.*``) inherit its handlers.
        level: Level name. Defaults to DEBUG in debug mode, INFO otherwise.
        log_file: Optional file that receives a copy of every record.
    """
    level = (level or _default_level()).upper()
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # Avoid adding handlers multiple times
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if log_file is not None:
        log_file = Path(log_file)
        already = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_file.resolve()
            for h in logger.handlers
        )
        if not already:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    for handler in logger.handlers:
        handler.setLevel(getattr(logging, level))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance under the ``tilescope`` namespace."""
    return logging.getLogger(f"tilescope.{name}")
