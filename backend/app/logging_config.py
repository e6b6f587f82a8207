import logging
import os
from logging.config import dictConfig

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
TELEMETRY_LOGGER = "qiyas.telemetry"


def configure_logging() -> None:
    """Configure process-wide logging from QIYAS_* environment flags.

    ``QIYAS_TELEMETRY_LOG_LEVEL`` tunes the structured event stream apart from
    the root level, e.g. ``WARNING`` silences per-submission event lines.
    """
    level = os.getenv("QIYAS_LOG_LEVEL", "INFO").upper()
    telemetry_level = os.getenv("QIYAS_TELEMETRY_LOG_LEVEL", level).upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": DEFAULT_LOG_FORMAT,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                TELEMETRY_LOGGER: {"level": telemetry_level},
                # Statement logging is owned by QIYAS_DATABASE_ECHO.
                "sqlalchemy.engine": {"level": "WARNING"},
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )

    if os.getenv("QIYAS_DEBUG_HTTP", "0") == "1":
        logging.getLogger("httpx").setLevel(logging.DEBUG)
        logging.getLogger("uvicorn.access").setLevel(logging.DEBUG)
