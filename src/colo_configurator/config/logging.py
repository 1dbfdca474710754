"""Logging setup shared by the API and the scripts."""
import logging
import sys
from typing import Optional


_LOGGING_CONFIGURED = False


def setup_logging(
    name: str = 'colo_configurator',
    level: int | str = logging.INFO,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure root handlers once and return the named logger."""
    global _LOGGING_CONFIGURED

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if _LOGGING_CONFIGURED:
        return logger

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _LOGGING_CONFIGURED = True
    return logger
