"""
Structured logging configuration.

- Development / testing: one line per record, evaluation context as key=value
- Production: JSON lines for the log aggregator
- Log level: LOG_LEVEL env variable

Services attach evaluation context through ``extra=``; only the keys listed
below reach the output.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")

# Evaluation context, in the order the readable format prints it
CONTEXT_FIELDS = (
    "evaluation_id",
    "participant_id",
    "role",
    "from_progression",
    "progression",
    "consensus",
    "action_id",
    "project_id",
    "question_count",
    "previous_evaluation_id",
    "template_id",
    "previous_id",
    "barrier",
    "category_id",
    "created_by",
    "edited_by",
)


def _fields(record, names):
    return {k: getattr(record, k) for k in names if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_fields(record, REQUEST_FIELDS))
        entry.update(_fields(record, CONTEXT_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """`12:00:01 INFO bmt.services.progression: message evaluation_id=... progression=...`"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        parts = [f"{ts} {record.levelname:<8} {record.name}: {record.getMessage()}"]
        parts.extend(f"{k}={v}" for k, v in _fields(record, CONTEXT_FIELDS).items())
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"[{duration:.0f}ms]")
        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    JSON output outside DEBUG and TESTING; readable output otherwise.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    root = logging.getLogger()
    # create_app runs once per test session; avoid stacking handlers
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
