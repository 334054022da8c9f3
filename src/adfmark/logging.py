"""Logging setup for the command line"""

import logging

from rich.logging import RichHandler


LOGGER_NAME = "adfmark"


def configure_logging(level: str = "WARNING") -> logging.Logger:
    """Attach a RichHandler to the adfmark logger; repeated calls only update the level."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(rich_tracebacks=True, show_time=False, show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    return logger
