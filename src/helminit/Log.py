import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "helminit"


def configure_logging(level: str = "INFO", console: Console | None = None) -> logging.Logger:
    """Send the package's log records to stderr through rich."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = RichHandler(console=console or Console(stderr=True), show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(level.upper())
    return logger
