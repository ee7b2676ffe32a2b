"""Logging filters and JSON logging setup.

This module provides a logging filter that injects the current request id
into log records using the ContextVar set by the request-id middleware, and
a helper that installs a JSON handler on the package logger.
"""

import logging
from logging import Filter, LogRecord

from pythonjsonlogger import jsonlogger

from .middleware import REQUEST_ID_CTX

JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    The value comes from ``REQUEST_ID_CTX``; outside a request it is "-" so
    formatters can always reference ``%(request_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        return True


def configure_logging(level: str = "INFO", name: str = "figures_store") -> logging.Logger:
    """Install a JSON stream handler on logger ``name`` (once).

    Args:
        level: Log level name, e.g. "INFO".
        name: Logger to configure; its children propagate to it.

    Returns:
        logging.Logger: The configured logger.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler()
        h.setFormatter(jsonlogger.JsonFormatter(JSON_FORMAT))
        h.addFilter(RequestIdFilter())
        logger.addHandler(h)
    logger.setLevel(level)
    return logger
