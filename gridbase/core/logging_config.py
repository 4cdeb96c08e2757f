"""
Logging setup shared by the API and the console.
"""
import logging
from logging.config import dictConfig
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

# Third-party loggers that drown out import progress at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "multipart", "httpx")

_is_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Send gridbase logs to stdout at ``level``; later calls are no-ops."""
    global _is_configured
    if _is_configured:
        return

    log_level = (level or "INFO").upper()
    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": log_level,
            },
        },
        "root": {"handlers": ["console"], "level": log_level},
        "loggers": {
            "gridbase": {"level": log_level},
            **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        },
    })
    _is_configured = True
