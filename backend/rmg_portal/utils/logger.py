"""
Logging - one JSON object per line, tagged with the request's correlation id

Workflow code passes its identifiers through `extra`, for example

    logger.info("Ticket approved", extra={"ticket_number": "TKT0042", "action": "approve"})

and the formatter lifts the known keys (see WORKFLOW_FIELDS) into the
payload so log searches can filter on them.
"""
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar

from ..config.settings import settings
from .time import utc_now, format_iso


correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

WORKFLOW_FIELDS = (
    # helpdesk
    "ticket_number", "action", "status", "previous_status", "specialist_queue",
    # people
    "employee_id", "actor_id", "notification_role",
    # timesheets and leaves
    "project_id", "week_start_date", "updated_count", "leave_id",
    # request plumbing
    "error_code", "duration_ms", "path",
)

NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "pymongo": logging.WARNING,
    "apscheduler": logging.WARNING,
}


class JsonFormatter(logging.Formatter):
    """Render a record as a single JSON line"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": format_iso(utc_now()),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            payload["correlation_id"] = correlation_id

        payload.update({
            key: getattr(record, key) for key in WORKFLOW_FIELDS if hasattr(record, key)
        })

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def _rotating_file(filename: str, formatter: logging.Formatter, level: int = logging.NOTSET) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        os.path.join(settings.logs_path, filename),
        maxBytes=settings.log_file_max_mb * 1024 * 1024,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging() -> None:
    """
    Route the root logger to stdout, logs/app.log and logs/error.log

    Safe to call more than once; existing root handlers are replaced.
    """
    os.makedirs(settings.logs_path, exist_ok=True)
    formatter = JsonFormatter()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(console)
    root.addHandler(_rotating_file("app.log", formatter))
    root.addHandler(_rotating_file("error.log", formatter, logging.ERROR))

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()
