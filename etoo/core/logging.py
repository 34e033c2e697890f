"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""Logging infrastructure with run tracking and error collection.

This module provides the console/file logging setup used by the importer,
run IDs attached to every record, sensitive data redaction and an error
tracker that collects per-test failures for the final report.
"""

import json
import logging
import os
import re
import sys
import threading
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from re import Pattern
from typing import Any

from rich.logging import RichHandler

_context_local = threading.local()

# Upload worker threads do not inherit thread-local data, so the active
# run id is mirrored here for them.
_process_run_id: str | None = None


def get_run_id() -> str:
    """Return the run id of the current thread, or of the process when unset."""
    return getattr(_context_local, "run_id", None) or _process_run_id or "-"


@contextmanager
def run_id(value: str | None = None) -> Iterator[str]:
    """
    Context manager binding a run id to every record logged inside it.

    Args:
    ----
        value: ID to use, or None to generate a new one

    Yields:
    ------
        str: The active run id

    """
    global _process_run_id
    previous = getattr(_context_local, "run_id", None)
    previous_process = _process_run_id
    current = value or f"etoo-{uuid.uuid4().hex[:12]}"
    _context_local.run_id = current
    _process_run_id = current
    try:
        yield current
    finally:
        _context_local.run_id = previous
        _process_run_id = previous_process


class LogRedactor:
    """
    Redacts credentials from log messages.
    """

    def __init__(self) -> None:
        self.patterns: dict[str, Pattern] = {
            "password": re.compile(
                r'(password|passwd|client_secret|secret)["\']?\s*[:=]\s*["\']?([^"\'&\s,}]+)',
                re.IGNORECASE,
            ),
            "cookie": re.compile(
                r'(LWSSO_COOKIE_KEY|Cookie|Set-Cookie)["\']?\s*[:=]\s*["\']?([^"\'&\s,}]{8,})',
                re.IGNORECASE,
            ),
        }

    def redact(self, message: str) -> str:
        """Redact sensitive values, keeping their keys."""
        if not isinstance(message, str):
            return message
        for pattern in self.patterns.values():
            message = pattern.sub(r"\1: [REDACTED]", message)
        return message


redactor = LogRedactor()


class RedactionFilter(logging.Filter):
    """Handler filter that redacts the rendered message and attaches the run id."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = get_run_id()
        if isinstance(record.msg, str):
            record.msg = redactor.redact(record.msg)
        return True


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs log records as JSON lines.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "run_id": getattr(record, "run_id", get_run_id()),
        }

        if getattr(record, "context_data", None):
            log_data["context"] = record.context_data

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, default=str)


class ContextFormatter(logging.Formatter):
    """
    Formatter appending context data as ``[key=value]`` pairs.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, "context_data", None)
        if context:
            message = f"{message} " + " ".join(f"[{k}={v}]" for k, v in context.items())
        return message


@contextmanager
def log_operation(
    logger: logging.Logger,
    operation_name: str,
    level: int = logging.INFO,
    context: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Context manager for logging operations with timing.

    Args:
    ----
        logger: The logger instance to use
        operation_name: Name of the operation being performed
        level: Log level to use
        context: Additional context data to include in the logs

    Raises:
    ------
        Exception: Re-raises any exception that occurs within the context

    """
    start_time = time.time()
    context = dict(context or {})
    logger.log(level, f"Starting {operation_name}", extra={"context_data": context})

    try:
        yield
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Failed {operation_name} after {duration:.2f}s: {type(e).__name__}: {e}",
            extra={"context_data": context},
        )
        raise
    duration = time.time() - start_time
    logger.log(
        level,
        f"Completed {operation_name} in {duration:.2f}s",
        extra={"context_data": context},
    )


class ErrorTracker:
    """
    Tracks errors and their context for later analysis.

    The importer records one entry per failed test or step upload so the
    summary can report error types without putting causes into the status.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.errors: list[dict[str, Any]] = []
        self.logger = logger or logging.getLogger("etoo.error_tracker")
        self._lock = threading.Lock()

    def add_error(
        self, error: Exception, context: dict[str, Any] | None = None, log: bool = True
    ) -> None:
        """
        Add an error to the tracker.

        Args:
        ----
            error: The exception that occurred
            context: Additional context information
            log: Whether to log the error as well as tracking it

        """
        error_info = {
            "error_type": type(error).__name__,
            "message": str(error),
            "timestamp": datetime.now().isoformat(),
            "run_id": get_run_id(),
            "context": context or {},
        }
        with self._lock:
            self.errors.append(error_info)

        if log:
            self.logger.error(
                f"Error tracked: {error_info['error_type']}: {error_info['message']}",
                extra={"context_data": context or {}},
            )

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def get_error_summary(self) -> dict[str, Any]:
        """
        Get a summary of tracked errors.

        Returns
        -------
            A dictionary with ``total_errors``, ``error_types`` (count per
            exception type), ``first_error`` and ``last_error``.

        """
        with self._lock:
            errors = list(self.errors)

        error_types: dict[str, int] = {}
        for error in errors:
            error_types[error["error_type"]] = error_types.get(error["error_type"], 0) + 1

        return {
            "total_errors": len(errors),
            "error_types": error_types,
            "first_error": errors[0] if errors else None,
            "last_error": errors[-1] if errors else None,
        }


def configure_logging(
    level: int | str = logging.INFO,
    log_file: str | None = None,
    json_format: bool = False,
    include_timestamp: bool = True,
    use_rich: bool = True,
    debug: bool = False,
) -> None:
    """
    Configure application logging.

    Args:
    ----
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL or integer)
        log_file: Optional path to log file
        json_format: Whether to use JSON format for logs
        include_timestamp: Whether to include timestamps in logs
        use_rich: Whether to use Rich for console output
        debug: Whether to force debug mode

    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    if debug:
        level = logging.DEBUG

    format_str = (
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        if include_timestamp
        else "[%(levelname)s] %(name)s: %(message)s"
    )

    handlers: list[logging.Handler] = []
    if use_rich and not json_format:
        console_handler = RichHandler(rich_tracebacks=True, markup=False, show_time=include_timestamp)
        console_handler.setFormatter(ContextFormatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(JSONFormatter() if json_format else ContextFormatter(format_str))
    handlers.append(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter() if json_format else ContextFormatter(format_str))
        handlers.append(file_handler)

    for handler in handlers:
        handler.addFilter(RedactionFilter())

    root = logging.getLogger()
    root.setLevel(max(level, logging.WARNING))
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)

    logger = logging.getLogger("etoo")
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    for handler in handlers:
        logger.addHandler(handler)

    logger.debug(f"Logging configured with level {logging.getLevelName(level)}")
