"""Structured logging for TaskPlanner."""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from .errors import classify_error

_RESERVED = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "exc_info",
    "exc_text",
    "stack_info",
    "taskName",
    "message",
    "asctime",
}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Extra kwargs passed through ``extra=`` land on the record itself
        for k, v in record.__dict__.items():
            if k in _RESERVED or k.startswith("_") or k in entry:
                continue
            try:
                json.dumps(v)
            except TypeError:
                v = repr(v)
            entry[k] = v
        return json.dumps(entry)


class StructuredLogger:
    def __init__(
        self, name: str = "taskplanner", json_logging: bool = False, level: str = "INFO"
    ) -> None:
        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        for h in list(self._logger.handlers):
            self._logger.removeHandler(h)
        # stderr keeps `--json` command output on stdout machine readable
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            JSONFormatter()
            if json_logging
            else logging.Formatter("%(asctime)s %(levelname)s %(message)s")
        )
        self._logger.addHandler(handler)
        self._logger.propagate = False

    def log_operation(self, operation: str, **kw: Any) -> None:
        extra = {"operation": operation, **kw}
        self._logger.info(f"Operation: {operation}", extra=extra)

    def log_task_action(self, action: str, task_id: int | None = None, **kw: Any) -> None:
        extra: dict[str, Any] = {"operation": f"task_{action}", **kw}
        if task_id is not None:
            extra["task_id"] = task_id
        msg = f"task {action}" + (f" #{task_id}" if task_id is not None else "")
        self._logger.info(msg, extra=extra)

    def log_performance(self, operation: str, duration_ms: float, **kw: Any) -> None:
        extra = {"operation": operation, "duration_ms": round(duration_ms, 2), **kw}
        self._logger.debug(
            f"Performance: {operation} completed in {duration_ms:.2f}ms", extra=extra
        )

    def log_error(self, message: str, error: str | None = None, **kw: Any) -> None:
        extra = dict(kw)
        if error:
            extra["error"] = error
        self._logger.error(message, extra=extra)

    def debug(self, message: str, **kw: Any) -> None:
        self._logger.debug(message, extra=kw)

    def info(self, message: str, **kw: Any) -> None:
        self._logger.info(message, extra=kw)

    def warning(self, message: str, **kw: Any) -> None:
        self._logger.warning(message, extra=kw)

    def error(self, message: str, **kw: Any) -> None:  # noqa: D401
        self._logger.error(message, extra=kw)

    @contextmanager
    def timed_operation(
        self,
        operation: str,
        *,
        expected: tuple[type[BaseException], ...] = (),
        **kw: Any,
    ) -> Iterator[None]:
        """Time the block; log failures classified, ``expected`` ones at debug level."""
        start = time.perf_counter()
        self.debug(f"Operation: {operation}_start", operation=f"{operation}_start", **kw)
        try:
            yield
        except expected as exc:
            self.debug(f"{operation}: {exc}", **kw)
            raise
        except Exception as exc:
            info = classify_error(exc)
            self.log_error(
                f"{operation}_failed",
                error=info.message,
                category=info.category,
                transient=info.transient,
                original_type=info.original_type,
                **kw,
            )
            raise
        self.log_performance(operation, (time.perf_counter() - start) * 1000, **kw)


_GLOBAL: StructuredLogger | None = None


def get_logger() -> StructuredLogger:
    global _GLOBAL  # noqa: PLW0603
    if _GLOBAL is None:
        _GLOBAL = StructuredLogger(level="WARNING")
    return _GLOBAL


def configure_logging(json_logging: bool = False, level: str = "INFO") -> StructuredLogger:
    global _GLOBAL  # noqa: PLW0603
    _GLOBAL = StructuredLogger(json_logging=json_logging, level=level)
    return _GLOBAL


__all__ = ["JSONFormatter", "StructuredLogger", "configure_logging", "get_logger"]
