"""Logging configuration for the obligation scheduler."""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Set up the root handler once at application startup."""

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        logging.Formatter("[%(asctime)s][%(levelname)s] %(name)s: %(message)s")
    )
    root_logger.addHandler(console_handler)

    # motor/pymongo are chatty at DEBUG
    logging.getLogger("pymongo").setLevel(logging.WARNING)
