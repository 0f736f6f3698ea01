import logging
import sys
from typing import Optional

from farmsight.core.config import settings


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return a logger writing to stdout.

    Handlers are attached once per name so repeated calls don't duplicate output.
    """
    logger = logging.getLogger(name or "farmsight")

    if logger.handlers:
        return logger

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(settings.LOG_LEVEL.upper())

    return logger
