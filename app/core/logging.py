"""Logging setup for the API process (console only; the host collects stdout)."""

import logging.config
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def configure_logging(log_level: str = "INFO") -> None:
    """Configure the root logger and align uvicorn's loggers with it."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT, "datefmt": LOG_DATE_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": sys.stdout,
                    "formatter": "default",
                    "level": log_level,
                },
            },
            "loggers": {
                "": {"handlers": ["console"], "level": log_level},
                "uvicorn.error": {"level": log_level},
                "uvicorn.access": {"level": log_level},
                # SQL echo is controlled by DEBUG on the engine, not here.
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
