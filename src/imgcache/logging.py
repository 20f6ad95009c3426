"""
Structured logging for the image cache.

Provides:
- Context variables for controller_id, job_id, namespace (using contextvars)
- JSONFormatter for machine-readable logs to file
- RichHandler for pretty console output
- ContextLogger wrapper that attaches context to all log calls
- setup_logging() that configures both file and console handlers
- Context manager log_context() for scoped context
- get_logger() factory

Context variables are copied into every asyncio task at creation, so a
controller that sets its id before spawning its submit task gets it on every
record that task emits.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

ROOT_LOGGER_NAME = "imgcache"

# Context variables for structured logging
_controller_var: ContextVar[str | None] = ContextVar("controller_id", default=None)
_job_var: ContextVar[str | None] = ContextVar("job_id", default=None)
_namespace_var: ContextVar[str | None] = ContextVar("namespace", default=None)


def get_controller_id() -> str | None:
    """Get the current controller ID from context."""
    return _controller_var.get()


def get_job_id() -> str | None:
    """Get the current download job ID from context."""
    return _job_var.get()


def get_namespace() -> str | None:
    """Get the current cache namespace from context."""
    return _namespace_var.get()


def _current_context() -> dict[str, str]:
    context: dict[str, str] = {}
    controller_id = get_controller_id()
    job_id = get_job_id()
    namespace = get_namespace()

    if controller_id:
        context["controller_id"] = controller_id
    if job_id:
        context["job_id"] = job_id
    if namespace:
        context["namespace"] = namespace
    return context


@contextmanager
def log_context(
    controller_id: str | None = None,
    job_id: str | None = None,
    namespace: str | None = None,
) -> Generator[None, None, None]:
    """Context manager for scoped logging context.

    Args:
        controller_id: Controller ID to set in context.
        job_id: Download job ID to set in context.
        namespace: Cache namespace to set in context.

    Yields:
        None. Context variables are set for the duration of the context.
    """
    old_controller = _controller_var.get()
    old_job = _job_var.get()
    old_namespace = _namespace_var.get()

    try:
        if controller_id is not None:
            _controller_var.set(controller_id)
        if job_id is not None:
            _job_var.set(job_id)
        if namespace is not None:
            _namespace_var.set(namespace)
        yield
    finally:
        _controller_var.set(old_controller)
        _job_var.set(old_job)
        _namespace_var.set(old_namespace)


class JSONFormatter(logging.Formatter):
    """JSON formatter for machine-readable log files.

    Produces JSON Lines format with structured context.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log_obj.update(_current_context())

        # Add extra fields from the record
        if hasattr(record, "extra"):
            log_obj["extra"] = record.extra

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class ContextRichHandler(RichHandler):
    """Rich handler that includes context in console output."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        """Override to add context prefix."""
        level_text = super().get_level_text(record)

        parts: list[str] = []
        controller_id = get_controller_id()
        job_id = get_job_id()
        namespace = get_namespace()

        if controller_id:
            # Tail of a UUID7 is the random part, which reads better than the timestamp
            parts.append(f"[dim]{controller_id[-8:]}[/dim]")
        if namespace:
            parts.append(f"[cyan]{namespace}[/cyan]")
        if job_id:
            parts.append(f"[magenta]{job_id[-8:]}[/magenta]")

        if parts:
            prefix = " ".join(parts)
            return Text.from_markup(f"{level_text} {prefix}")

        return level_text


class ContextLogger:
    """Logger wrapper that automatically attaches context to log calls.

    Keyword arguments other than the stdlib ones become structured fields.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        """Get the logger name."""
        return self._logger.name

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        """Internal logging method that adds context."""
        if not self._logger.isEnabledFor(level):
            return

        extra = kwargs.pop("extra", {})
        extra.update(_current_context())

        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel"):
                extra[key] = kwargs.pop(key)

        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"extra": extra})

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        """Log error message."""
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)


_console: Console | None = None
_setup_done: bool = False


def get_console() -> Console:
    """Get the global rich console."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Set up logging with JSON file handler and rich console handler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. If None, only console logging is enabled.
        console_output: Whether to enable console output.
    """
    global _setup_done

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    root_logger.handlers.clear()

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    if console_output:
        rich_handler = ContextRichHandler(
            console=get_console(),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=False,
        )
        rich_handler.setLevel(getattr(logging, log_level.upper()))
        root_logger.addHandler(rich_handler)

    root_logger.propagate = False

    for noisy_logger in ["httpx", "httpcore", "asyncio"]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    _setup_done = True


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger.

    Args:
        name: Logger name (usually __name__).

    Returns:
        ContextLogger wrapper around the standard logger.
    """
    if not _setup_done:
        setup_logging()

    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return ContextLogger(logging.getLogger(name))
