"""
WasteWatch AI - Logging Configuration
Logging setup for the pipeline: readable lines locally, one JSON object per
line in production so the function runtime can index severity and fields.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from wastewatch.core.config import settings

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"


class JsonFormatter(logging.Formatter):
    """Formats records as single-line JSON with a ``severity`` key."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    level: Optional[str] = None,
    json_output: Optional[bool] = None
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Emit JSON lines (default: only when app_env is production)

    Returns:
        Configured logger instance
    """
    log_level = getattr(logging, (level or settings.log_level).upper())
    if json_output is None:
        json_output = settings.app_env == "production"

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logging.basicConfig(level=log_level, handlers=[handler])

    logger = logging.getLogger("wastewatch")
    logger.setLevel(log_level)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return logger
