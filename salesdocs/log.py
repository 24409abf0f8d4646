"""
salesdocs/log.py

Structured (JSON) logging for the application.

configure_logging(app) is called once from create_app(). It attaches the
handlers to the ``salesdocs`` package logger and to ``app.logger``, so
every module can simply use ``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from flask.logging import default_handler

PACKAGE_LOGGER = "salesdocs"

_RESERVED = {
    "args", "asctime", "created", "exc_info", "exc_text", "filename", "id", "levelno", "lineno",
    "message", "module", "msecs", "funcName", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "thread", "threadName", "levelname", "taskName",
}


class JsonFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()

    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        # extra={...} fields
        for attr, value in record.__dict__.items():
            if attr not in _RESERVED and not attr.startswith("_"):
                log_record[attr] = value

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)


def configure_logging(app) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    formatter = JsonFormatter()

    handlers = []
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    log_file = app.config.get("LOG_FILE")
    if log_file:
        rotating_handler = RotatingFileHandler(log_file, maxBytes=2 * 1024 * 1024, backupCount=10)
        rotating_handler.setFormatter(formatter)
        handlers.append(rotating_handler)

    # app.logger is the package logger when the app is named after the package
    for logger in {logging.getLogger(PACKAGE_LOGGER), app.logger}:
        logger.setLevel(level)
        logger.removeHandler(default_handler)
        # create_app() may run many times in one process (tests)
        for handler in list(logger.handlers):
            if isinstance(handler.formatter, JsonFormatter):
                logger.removeHandler(handler)
                handler.close()
        for handler in handlers:
            logger.addHandler(handler)
