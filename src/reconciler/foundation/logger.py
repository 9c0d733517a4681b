"""Logging configuration with structured JSON formatter.

The reconciler is a headless process whose only user-visible surface is its
log stream, so every record is emitted as a single JSON object that log
aggregation can index. Context travels through the ``extra`` parameter:

```python
logger.info(
    "Acknowledged message",
    extra={"msg_id": 42, "resource_name": "db1", "message_type": "Create"},
)
```
"""

import json
import logging
from typing import Any

# Standard LogRecord attributes (already handled or internal to logging)
_STANDARD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "asctime",
        "error",
    }
)


class CustomJSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging.

    This formatter converts log records to JSON format, including:
    - Standard log fields (time, level, message, etc.)
    - Error information, with the formatted traceback when ``exc_info`` is set
    - All extra attributes passed via the extra parameter
    """

    def __init__(self, fmt: str) -> None:
        """Initialize the formatter.

        Args:
            fmt: Format string (used for asctime, but output is JSON).
        """
        logging.Formatter.__init__(self, fmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: The log record to format.

        Returns:
            JSON string representation of the log record.
        """
        logging.Formatter.format(self, record)
        return json.dumps(self.get_log(record), indent=None, default=str)

    def get_log(self, record: logging.LogRecord) -> dict[str, Any]:
        """Extract log data from record into a dictionary.

        Args:
            record: The log record to extract data from.

        Returns:
            Dictionary containing log data.
        """
        d: dict[str, Any] = {
            "time": record.asctime,
            "process_name": record.processName,
            "process_id": record.process,
            "thread_name": record.threadName,
            "thread_id": record.thread,
            "level": record.levelname,
            "logger_name": record.name,
            "pathname": record.pathname,
            "line": record.lineno,
            "message": record.message,
        }

        error_data = getattr(record, "error", None)
        if isinstance(error_data, dict):
            error_dict: dict[str, Any] = error_data.copy()
            if record.exc_info:
                error_dict["trace"] = self.formatException(record.exc_info)
            d["error"] = error_dict
        elif error_data is not None:
            d["error"] = error_data
        elif record.exc_info and record.exc_info[0] is not None:
            d["error"] = {
                "type": record.exc_info[0].__name__,
                "trace": self.formatException(record.exc_info),
            }

        # Include all non-standard attributes (from extra parameter)
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                d[key] = value

        return d


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,  # Keep existing loggers, just configure them
    "formatters": {
        "standard": {"()": lambda: CustomJSONFormatter(fmt="%(asctime)s")},
    },
    "handlers": {
        "default": {
            "formatter": "standard",
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "reconciler": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
        "kubernetes": {
            "handlers": ["default"],
            "level": "WARNING",
            "propagate": False,
        },
        "urllib3": {
            "handlers": ["default"],
            "level": "WARNING",
            "propagate": False,
        },
        "sqlalchemy.engine": {
            "handlers": ["default"],
            "level": "WARNING",
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["default"],
        "level": "INFO",
    },
}
