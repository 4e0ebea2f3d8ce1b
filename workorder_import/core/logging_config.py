"""
Application-wide logging setup.

Every module logs through ``logging.getLogger(__name__)``; this configures the
root handler once so scheduler threads and request handlers share one format.
"""
import logging
from logging.config import dictConfig
from typing import Optional

_is_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root and package loggers if they have not been configured yet.

    Args:
        level: Optional log level override (e.g. "DEBUG", "INFO").
    """
    global _is_configured

    if _is_configured:
        return

    log_level = (level or "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s | %(levelname)-7s | %(threadName)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "level": log_level,
                }
            },
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
        }
    )

    logging.getLogger("workorder_import").setLevel(log_level)

    _is_configured = True
