"""
Logging helpers.

Every module obtains its logger through get_logger(__name__) so that the
whole package shares one configuration under the "acs_auth" namespace.
"""
import logging
import logging.config

from acs_auth.core import config


def configure_logging(level: str | None = None) -> None:
    """Configure console logging for the application and the database layer."""
    effective_level = (level or config.LOG_LEVEL).upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "simple": {
                "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "simple",
            },
        },
        "loggers": {
            "acs_auth": {
                "level": effective_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    })


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name (usually __name__)."""
    return logging.getLogger(name)
