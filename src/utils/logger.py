import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_console: Optional[Console] = None


class PaddedNameFormatter(logging.Formatter):
    """Pads logger names to the longest one seen so messages line up."""

    width = 12

    def format(self, record):
        PaddedNameFormatter.width = max(PaddedNameFormatter.width, len(record.name))
        record.padded_name = record.name.ljust(PaddedNameFormatter.width)
        return super().format(record)


def _get_console() -> Console:
    """
    Console shared by all handlers. While the Textual app owns the terminal
    logs should go to STOREFRONT_LOG_FILE; without it they go to stderr.
    """
    global _console
    if _console is None:
        log_file = os.getenv("STOREFRONT_LOG_FILE")
        if log_file:
            _console = Console(file=open(log_file, "a", encoding="utf-8"), width=140)
        else:
            _console = Console(stderr=True)
    return _console


def get_logger(name=None) -> logging.Logger:
    """
    Creates and returns a logger configured with RichHandler for rich output.
    DEBUG env var switches the level to debug.
    """
    if name is None:
        name = "storefront"
    logger = logging.getLogger(name)
    log_level = logging.DEBUG if os.getenv("DEBUG") else logging.INFO
    logger.setLevel(log_level)

    if not logger.handlers:
        handler = RichHandler(
            console=_get_console(),
            show_time=True,
            show_level=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(PaddedNameFormatter("[%(padded_name)s]  %(message)s"))
        handler.setLevel(log_level)
        logger.addHandler(handler)

        logger.propagate = False
        logger.debug(f"Logger for '{name}' initialized with RichHandler.")

    return logger
