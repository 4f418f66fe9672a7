"""
Structured Logging & Trace Context for the sync engine

- trace_id per sync run, propagated with contextvars
- sync session / employee context on every log line
- JSON structured logs for workers, plain text for local runs

Usage:
    from empsync.worker.tracing import get_logger, TracingContext

    trace_id = TracingContext.new_trace()
    TracingContext.set_sync_context(session_id)

    logger = get_logger("SyncRunner")
    logger.info(LogEvents.EMPLOYEE_SYNC_START, employee_id="1234")
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, UTC
from typing import Optional

# Context variables (thread-safe, async-safe)
_trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")
_session_id_var: ContextVar[str] = ContextVar("sync_session_id", default="")
_employee_id_var: ContextVar[str] = ContextVar("employee_id", default="")


class TracingContext:
    """Trace context for one sync run"""

    @staticmethod
    def new_trace() -> str:
        trace_id = str(uuid.uuid4())[:8]
        _trace_id_var.set(trace_id)
        return trace_id

    @staticmethod
    def get_trace_id() -> str:
        return _trace_id_var.get() or "no-trace"

    @staticmethod
    def set_sync_context(session_id: str, employee_id: str = None) -> None:
        _session_id_var.set(str(session_id))
        if employee_id:
            _employee_id_var.set(str(employee_id))

    @staticmethod
    def set_employee(employee_id: Optional[str]) -> None:
        _employee_id_var.set(str(employee_id) if employee_id else "")

    @staticmethod
    def get_session_id() -> str:
        return _session_id_var.get()

    @staticmethod
    def get_employee_id() -> str:
        return _employee_id_var.get()


class JSONLogFormatter(logging.Formatter):
    """One JSON object per log line"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "trace_id": TracingContext.get_trace_id(),
            "component": getattr(record, "component", record.name),
            "event": getattr(record, "event", record.getMessage()),
        }

        session_id = TracingContext.get_session_id()
        if session_id:
            log_entry["sync_session_id"] = session_id

        employee_id = TracingContext.get_employee_id()
        if employee_id:
            log_entry["employee_id"] = employee_id

        extra_fields = getattr(record, "extra_fields", {})
        if extra_fields:
            log_entry.update(extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class StructuredLogger:
    """Logger wrapper taking an event name plus keyword fields"""

    def __init__(self, component: str, logger: logging.Logger = None):
        self.component = component
        self._logger = logger or logging.getLogger(f"empsync.{component}")

    def _log(self, level: int, event: str, exc_info: bool = False, **kwargs) -> None:
        extra = {
            "component": self.component,
            "event": event,
            "extra_fields": kwargs,
        }
        self._logger.log(level, event, extra=extra, exc_info=exc_info)

    def debug(self, event: str, **kwargs) -> None:
        self._log(logging.DEBUG, event, **kwargs)

    def info(self, event: str, **kwargs) -> None:
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs) -> None:
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, exc_info: bool = False, **kwargs) -> None:
        self._log(logging.ERROR, event, exc_info=exc_info, **kwargs)

    def timed_operation(self, operation: str) -> "TimedOperation":
        return TimedOperation(self, operation)


class TimedOperation:
    """Logs <operation>_complete / <operation>_failed with elapsed_ms"""

    def __init__(self, logger: StructuredLogger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[float] = None
        self.elapsed_ms: Optional[int] = None

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.debug(f"{self.operation}_start")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = int((time.monotonic() - self.start_time) * 1000)

        if exc_type:
            self.logger.error(
                f"{self.operation}_failed",
                elapsed_ms=self.elapsed_ms,
                error=str(exc_val),
            )
        else:
            self.logger.info(f"{self.operation}_complete", elapsed_ms=self.elapsed_ms)

        return False  # Don't suppress exceptions


# Logger cache
_loggers: dict[str, StructuredLogger] = {}
_setup_done = False


def setup_structured_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure the "empsync" logger tree.

    Args:
        level: DEBUG, INFO, WARNING, ERROR
        json_output: JSON lines (workers) or plain text (local development)
    """
    global _setup_done

    if _setup_done:
        return

    root_logger = logging.getLogger("empsync")
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_output:
        handler.setFormatter(JSONLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
        ))

    root_logger.addHandler(handler)

    # Quieten chatty libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _setup_done = True


def get_logger(component: str) -> StructuredLogger:
    """Component logger (cached)"""
    if component not in _loggers:
        _loggers[component] = StructuredLogger(component)

    return _loggers[component]


class LogEvents:
    """Standard log event names"""

    # Sync run
    SYNC_RUN_START = "sync_run_start"
    SYNC_RUN_COMPLETE = "sync_run_complete"
    SYNC_RUN_FAILED = "sync_run_failed"
    SYNC_RUN_CANCELLED = "sync_run_cancelled"

    # Per employee
    EMPLOYEE_SYNC_START = "employee_sync_start"
    EMPLOYEE_SYNC_SUCCESS = "employee_sync_success"
    EMPLOYEE_SYNC_FAILED = "employee_sync_failed"

    # Provider
    PROVIDER_RETRY = "provider_retry"
    PROVIDER_GAVE_UP = "provider_gave_up"

    # Storage
    LATEST_CONFLICT_RETRY = "latest_conflict_retry"

    # Derived data
    CHANGES_DETECTED = "changes_detected"
    TIMELINE_MERGED = "timeline_merged"
    SALARY_TABLE_MISS = "salary_table_miss"

    # Read view
    VIEW_REFRESH_START = "view_refresh_start"
    VIEW_REFRESH_COALESCED = "view_refresh_coalesced"
    VIEW_REFRESH_COMPLETE = "view_refresh_complete"
    VIEW_REFRESH_FAILED = "view_refresh_failed"
