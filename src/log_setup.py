"""
Logger setup shared by the PDF pipeline modules.
"""

import logging
import os

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_LEVEL = os.environ.get("PDF_LOG_LEVEL", "INFO").upper()


def get_logger(name: str) -> logging.Logger:
    """
    Get a named logger with a single console handler attached.

    The handler is only added the first time, so importing a module twice
    (or from tests) does not duplicate output.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        level = getattr(logging, LOG_LEVEL, logging.INFO)
        logger.setLevel(level)
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        formatter = logging.Formatter(LOG_FORMAT)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
    return logger
