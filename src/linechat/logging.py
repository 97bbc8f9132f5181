"""
=============================================================================
LOGGING SETUP
=============================================================================

All modules log through a namespaced logger:

    logger = logging.getLogger(__name__)     # e.g. "linechat.session"

so the whole package can be tuned from one place:

    logging.getLogger("linechat").setLevel(logging.DEBUG)

Two output formats are supported:

    text   2024-01-01 12:00:00 [INFO] linechat.session: [3f2a9c1d] ...
    json   {"timestamp": "...", "level": "INFO", "logger": "...", ...}

Text is for humans at a terminal, JSON for log aggregators. Session
related records may carry `session_id` and `username` attributes (passed
through `extra=`), the JSON formatter copies them into the output object.
=============================================================================
"""

import json
import logging
import time


TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes copied from a record into the JSON object when present
_CONTEXT_FIELDS = ("session_id", "username", "peer")


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": time.strftime(DATE_FORMAT, time.localtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry)


def configure_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure the root handler and the `linechat` logger.

    Args:
        level: Logging level name (DEBUG, INFO, ...).
        log_format: "text" or "json".
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    logging.basicConfig(level=numeric_level, handlers=[handler])

    logging.getLogger("linechat").setLevel(numeric_level)
