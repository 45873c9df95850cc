"""Logging setup."""

import logging
import logging.config

from authkeeper.config.settings import Settings


def configure_logging(settings: Settings) -> None:
    """Configure root logging once at process start."""
    level = "DEBUG" if settings.debug else settings.log_level.upper()

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {"level": level, "handlers": ["console"]},
            "loggers": {
                # SQL echo is controlled by database_echo, not the root level
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
