"""Logging configuration for the application."""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import Settings


def setup_logging(settings: Settings, name: str = "beergame") -> logging.Logger:
    """Set up logging configuration.

    Args:
        settings: Application settings providing level, format and log directory.
        name: Name of the logger. Module loggers below it inherit its handlers.

    Returns:
        Configured logger instance.
    """
    formatter = logging.Formatter(settings.LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logger = logging.getLogger(name)
    logger.setLevel(settings.LOG_LEVEL.upper())

    # Add handlers if they haven't been added before
    if not logger.handlers:
        logger.addHandler(console_handler)

        if settings.LOG_DIR:
            log_dir = Path(settings.LOG_DIR)
            log_dir.mkdir(parents=True, exist_ok=True)
            # Create a file handler that rotates log files
            file_handler = RotatingFileHandler(
                log_dir / "game.log", maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    # Prevent logging from propagating to the root logger
    logger.propagate = False

    return logger
