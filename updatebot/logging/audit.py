"""Structured JSON audit logging for bot runs.

Each record becomes one JSON line on stdout, copied to
RENOVATE_AUDIT_LOG_FILE when set. Inside run_context() every line carries
the run's id, so the lines of one bot run can be grouped downstream.
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone

AUDIT_LOGGER_NAME = "updatebot.audit"

# Keys owned by the formatter; audit_data may not replace them
RESERVED_KEYS = ("timestamp", "level", "logger", "message", "run_id")

run_id_var: ContextVar[str] = ContextVar("run_id", default="")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with audit_data merged in.

    An audit_data key that collides with a reserved key is kept under
    "data_<key>" instead of overwriting the record's own field.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": run_id_var.get(""),
        }
        for key, value in getattr(record, "audit_data", {}).items():
            entry[f"data_{key}" if key in RESERVED_KEYS else key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(settings=None) -> None:
    """Route the audit logger to stdout and, optionally, a file."""
    if settings is None:
        from updatebot.config.settings import get_settings

        settings = get_settings()

    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.audit_log_file:
        handlers.append(logging.FileHandler(settings.audit_log_file))
    for handler in handlers:
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)

    # Lines are already complete JSON; the root logger would print them twice
    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)


def generate_run_id() -> str:
    return uuid.uuid4().hex[:12]


class RunScope:
    """Identity and clock of one bot run."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        self.started_at = datetime.now(timezone.utc)
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self._start) * 1000, 2)


@contextmanager
def run_context(run_id: str | None = None):
    """Bind a run id to all audit lines logged inside the block.

    If the block raises, a "Run failed" line is logged before the error
    propagates. The previous run id is restored on exit.
    """
    scope = RunScope(run_id or generate_run_id())
    token = run_id_var.set(scope.run_id)
    try:
        yield scope
    except Exception as e:
        get_audit_logger().error(
            "Run failed",
            extra={"audit_data": {
                "error": str(e),
                "error_type": type(e).__name__,
                "latency_ms": scope.elapsed_ms,
            }},
        )
        raise
    finally:
        run_id_var.reset(token)
