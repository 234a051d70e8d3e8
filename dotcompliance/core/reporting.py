import logging
import logging.config
from typing import Any, Protocol

from dotcompliance.core.config import LOG_LEVEL

logger = logging.getLogger(__name__)


class Reporter(Protocol):
    def report(self, error: Exception, context: dict[str, Any]) -> None: ...


class LoggingReporter:
    """Reports unexpected data states to the application log."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def report(self, error: Exception, context: dict[str, Any]) -> None:
        self._log.error("%s: %s context=%s", type(error).__name__, error, context)


default_reporter = LoggingReporter()


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default"},
        },
        "root": {"level": level, "handlers": ["console"]},
    })
