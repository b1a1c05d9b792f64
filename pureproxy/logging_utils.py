"""Centralized logging utilities for PureProxy runs.

Every run writes to its own file under ``LOG_DIR`` (``<app>-<run_id>.log``)
and, optionally, to stdout. Records carry the run identifier so import runs
and manual analyses can be told apart in shared log sinks.

Timing helpers:

- ``perf``: decorator that logs one ``event=perf`` line per call with the
  duration and success flag.
- ``perf_span``: context manager that logs the same line for a code block.
"""

import functools
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from pureproxy.config import AppConfig

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [run=%(run_id)s] %(message)s"
PERF_FORMAT = "event=perf name=%s duration_ms=%.3f success=%s tags=%s"


class _RunContextFilter(logging.Filter):
    """Inject the current run identifier into every log record."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self._run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self._run_id
        return True


def _sanitize_run_id(run_id: str) -> str:
    """Convert a run identifier into a filesystem-friendly token."""
    return "".join(ch if ch.isalnum() or ch in ("-", "_") else "-" for ch in run_id)


def generate_run_id(prefix: Optional[str] = None) -> str:
    """Return a run identifier based on the current UTC timestamp."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}-{stamp}" if prefix else stamp


def configure_logging(
    config: AppConfig,
    run_id: Optional[str] = None,
    include_console: bool = True,
    fmt: str = DEFAULT_LOG_FORMAT,
) -> Path:
    """Replace root handlers with a per-run file handler (plus stdout)."""
    resolved_run_id = run_id or generate_run_id()

    log_dir = config.log_directory
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{config.app_name}-{_sanitize_run_id(resolved_run_id)}.log"

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    handlers = [logging.FileHandler(log_path, encoding="utf-8")]
    if include_console:
        handlers.append(logging.StreamHandler(sys.stdout))

    for handler in handlers:
        handler.setFormatter(logging.Formatter(fmt))
        handler.addFilter(_RunContextFilter(resolved_run_id))
        root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    return log_path


def flush_logging() -> None:
    """Flush every root handler, e.g. before exiting on a fatal error."""
    for handler in logging.getLogger().handlers:
        try:
            handler.flush()
        except Exception:  # noqa: BLE001 - flushing must never raise
            pass


def _format_tags(tags: Optional[Mapping[str, Any]]) -> str:
    if not tags:
        return "{}"
    return "{" + ", ".join(f"{k}={tags[k]!r}" for k in sorted(tags)) + "}"


def _elapsed_ms(start_ns: int) -> float:
    return (time.monotonic_ns() - start_ns) / 1_000_000.0


def perf(
    name: Optional[str] = None,
    *,
    tags: Optional[Mapping[str, Any]] = None,
    level: int = logging.INFO,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that logs execution time of a function.

    Args:
        name: Optional span name; defaults to ``<module>.<qualname>``.
        tags: Optional mapping of additional metadata to include in the log.
        level: Logging level to use (defaults to ``logging.INFO``).

    Exceptions raised by the wrapped function are logged as
    ``success=false`` and re-raised unchanged.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        span_name = name or f"{func.__module__}.{func.__qualname__}"
        logger = logging.getLogger(func.__module__)
        rendered_tags = _format_tags(tags)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_ns = time.monotonic_ns()
            success = False
            try:
                result = func(*args, **kwargs)
                success = True
                return result
            finally:
                logger.log(
                    level,
                    PERF_FORMAT,
                    span_name,
                    _elapsed_ms(start_ns),
                    str(success).lower(),
                    rendered_tags,
                )

        return wrapper

    return decorator


class perf_span:
    """Context manager to time an arbitrary code block and log its duration.

    Example:
        with perf_span("jobs.batch", tags={"batch": 3}):
            run_batch(...)
    """

    def __init__(
        self,
        name: str,
        *,
        tags: Optional[Mapping[str, Any]] = None,
        level: int = logging.INFO,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._name = name
        self._tags = tags or {}
        self._level = level
        self._logger = logger or logging.getLogger(__name__)
        self._start_ns: Optional[int] = None

    def __enter__(self) -> "perf_span":
        self._start_ns = time.monotonic_ns()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        start_ns = self._start_ns if self._start_ns is not None else time.monotonic_ns()
        self._logger.log(
            self._level,
            PERF_FORMAT,
            self._name,
            _elapsed_ms(start_ns),
            str(exc_type is None).lower(),
            _format_tags(self._tags),
        )
        return False


__all__ = [
    "configure_logging",
    "flush_logging",
    "generate_run_id",
    "DEFAULT_LOG_FORMAT",
    "perf",
    "perf_span",
]
