import logging
import sys

from storefront.config import settings

_FORMAT = "[%(name)s] %(levelname)s %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger writing to stdout with the storefront prefix format.
    The handler is attached once per logger name.
    """
    log = logging.getLogger(name)
    if not log.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter(_FORMAT))
        log.addHandler(h)
        log.setLevel(settings.LOG_LEVEL.upper())
    return log
