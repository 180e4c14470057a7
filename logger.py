"""
Logging setup for mdglide.

The terminal belongs to the TUI while it runs, so records go to the Textual
devtools console (stderr only outside a running app) and, optionally, to a
log file.
"""

import logging
from pathlib import Path
from typing import Optional

from textual.logging import TextualHandler

MDGLIDE = "mdglide"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(module_name: Optional[str] = None) -> logging.Logger:
    """Child of the mdglide logger named after the calling module."""
    if not module_name or module_name == "__main__":
        return logging.getLogger(MDGLIDE)
    return logging.getLogger(f"{MDGLIDE}.{module_name}")


def setup_logging(log_file: Optional[str] = None, level: str = "WARNING") -> logging.Logger:
    """Attach handlers to the mdglide root logger and return it.

    Safe to call more than once; handlers are replaced, not stacked.
    """
    logger = logging.getLogger(MDGLIDE)
    logger.setLevel(level.upper())
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    textual_handler = TextualHandler()
    textual_handler.setFormatter(formatter)
    logger.addHandler(textual_handler)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
