"""Centralized logging configuration."""

import logging

from config import settings

NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "urllib3",
    "plaid",
)


def setup_logging() -> None:
    """Configure logging for the application.

    Root level comes from settings.LOG_LEVEL; SQL echo and the Plaid SDK's
    HTTP chatter are held at WARNING.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        level=getattr(logging, settings.LOG_LEVEL),
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
