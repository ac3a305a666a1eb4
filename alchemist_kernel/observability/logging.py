"""Logging setup for the alchemist_kernel package."""

import logging
import re
import sys
from typing import Optional, Union

LOGGER_NAME = "alchemist_kernel"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_HANDLER_MARKER = "_alchemist_kernel_handler"
_KEY_PARAM = re.compile(r"(key=)[^&\s]+")
# httpx logs each request URL, query string included, on its own logger.
REDACTED_LOGGERS = ("httpx",)


class ApiKeyRedactingFilter(logging.Filter):
    """Masks ``key=...`` query parameters, as found in Gemini request URLs."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _KEY_PARAM.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(
    level: Union[int, str] = "INFO",
    stream: Optional[object] = None,
) -> logging.Logger:
    """
    Attach one stream handler to the package logger and set its level.

    API keys are masked in package records and in the request lines httpx
    logs, wherever those end up.

    Calling it again only updates the level; no second handler is added.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    if not any(getattr(h, _HANDLER_MARKER, False) for h in logger.handlers):
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(ApiKeyRedactingFilter())
        setattr(handler, _HANDLER_MARKER, True)
        logger.addHandler(handler)

    for name in REDACTED_LOGGERS:
        third_party = logging.getLogger(name)
        if not any(isinstance(f, ApiKeyRedactingFilter) for f in third_party.filters):
            third_party.addFilter(ApiKeyRedactingFilter())
    return logger
