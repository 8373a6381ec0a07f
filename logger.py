"""
JSON line logging for the shop backend.

Import as: from logger import logger
Keys that could carry credentials are dropped before a record is written.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

LOGGER_NAME = "shop"

SENSITIVE_KEYS = {
    "password",
    "password_hash",
    "passwordhash",
    "token",
    "authorization",
    "secret",
    "jwt_secret",
}

# Attributes every LogRecord carries; anything else came in through `extra`.
_RECORD_KEYS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key, value in record.__dict__.items():
            if key in _RECORD_KEYS or key.lower() in SENSITIVE_KEYS:
                continue
            log_obj[key] = value

        if record.exc_info:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_obj, default=str)


def setup_logger(name: str = LOGGER_NAME, level: str = "INFO") -> logging.Logger:
    log = logging.getLogger(name)
    log.setLevel(level.upper())

    # Re-imports and repeated app factories must not stack handlers.
    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        log.addHandler(handler)

    return log


logger = setup_logger()
