"""Application-wide logging configuration.

Installs one stdout handler on the root logger so module loggers emit
without per-module setup. Uvicorn loggers are routed through the same
handler.
"""

import logging
from logging.config import dictConfig

from formbuilder.core.config import settings


def _dict_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            "uvicorn": {"level": level, "handlers": ["console"], "propagate": False},
            "uvicorn.error": {"level": level, "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": level, "handlers": ["console"], "propagate": False},
        },
    }


def configure_logging() -> None:
    """Configure logging once; a no-op when the root logger already has handlers."""
    if logging.getLogger().handlers:
        return
    dictConfig(_dict_config(settings.LOG_LEVEL.upper()))
