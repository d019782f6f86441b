"""
Logging configuration for the application.

Controlled by FRAMEOPS_LOG_LEVEL and FRAMEOPS_LOG_FORMAT (simple or structured).
"""

import logging
import sys

from frameops.config import Settings

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "uvicorn.access")


class StructuredFormatter(logging.Formatter):
    """
    Structured log formatter for easy parsing.

    Format: timestamp | level | logger | message
    """

    def format(self, record: logging.LogRecord) -> str:
        logger_name = record.name
        if logger_name.startswith("frameops."):
            logger_name = logger_name[len("frameops.") :]

        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        message = (
            f"{timestamp} | "
            f"{record.levelname:8} | "
            f"{logger_name:22} | "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(settings: Settings) -> None:
    """Configure the root logger from settings."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "structured":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
