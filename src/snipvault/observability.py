"""Logging setup and per-operation metrics for the snippet vault.

``configure_logging()`` sends the ``snipvault`` logger hierarchy to a
rotating file. ``traced`` wraps service operations: each call is timed,
logged at DEBUG under a short correlation id and counted in the
process-wide ``metrics`` registry.
"""
import functools
import inspect
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "snipvault"
LOG_FILE_NAME = "snipvault.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Arguments copied into trace lines when a traced function has them
TRACE_ARGUMENTS = ("snippet_id", "title", "query")
_MAX_TRACE_VALUE = 50
_MAX_ERROR_TEXT = 200

F = TypeVar("F", bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: Optional[int] = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = False,
) -> Path:
    """Send snipvault logs to a rotating file (and optionally stderr).

    Calling it again replaces the handlers installed by the previous call;
    handlers added by anyone else are left alone.

    Args:
        log_dir: Directory for ``snipvault.log``. Defaults to the configured
            ``log_dir``.
        level: Logging level. Defaults to the configured ``log_level``.
        max_bytes: Size at which the log file is rotated.
        backup_count: Number of rotated files kept.
        console: Also log to stderr.

    Returns:
        The log directory.
    """
    if log_dir is None or level is None:
        from snipvault.config import config

        log_dir = config.log_dir if log_dir is None else log_dir
        level = config.get_log_level() if level is None else level

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        if getattr(handler, "_snipvault_handler", False):
            root_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers = [
        RotatingFileHandler(
            log_path / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler._snipvault_handler = True
        root_logger.addHandler(handler)

    root_logger.info(
        f"Logging to {log_path / LOG_FILE_NAME} at "
        f"{logging.getLevelName(level)}"
    )
    return log_path


@dataclass
class OperationStats:
    """Running totals for one operation name."""

    calls: int = 0
    errors: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_error: Optional[str] = None

    def add(self, duration_ms: float, error: Optional[str] = None) -> None:
        self.calls += 1
        self.total_ms += duration_ms
        self.max_ms = max(self.max_ms, duration_ms)
        if error is not None:
            self.errors += 1
            self.last_error = error[:_MAX_ERROR_TEXT]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "calls": self.calls,
            "errors": self.errors,
            "avg_ms": round(self.total_ms / self.calls, 2) if self.calls else 0.0,
            "max_ms": round(self.max_ms, 2),
            "last_error": self.last_error,
        }


class OperationMetrics:
    """Thread-safe call counts and latencies per service operation.

    Kept in memory for the life of the process; ``snipvault stats``
    prints them.
    """

    def __init__(self) -> None:
        self._stats: Dict[str, OperationStats] = {}
        self._lock = Lock()

    def record(
        self, operation: str, duration_ms: float, error: Optional[str] = None
    ) -> None:
        with self._lock:
            self._stats.setdefault(operation, OperationStats()).add(
                duration_ms, error
            )

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation totals, keyed by operation name."""
        with self._lock:
            return {name: s.as_dict() for name, s in sorted(self._stats.items())}

    def summary(self) -> Dict[str, Any]:
        """Overall totals plus the per-operation snapshot."""
        operations = self.snapshot()
        return {
            "calls": sum(op["calls"] for op in operations.values()),
            "errors": sum(op["errors"] for op in operations.values()),
            "operations": operations,
        }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()


metrics = OperationMetrics()


@contextmanager
def timed_operation(operation: str, **context: Any) -> Iterator[Dict[str, Any]]:
    """Time a block, log it at DEBUG and record it in ``metrics``.

    Yields a dict the block can fill with result details (for example
    ``result_count``); they are appended to the END log line.
    """
    trace_id = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {}
    started = time.perf_counter()
    error: Optional[str] = None

    logger.debug(
        f"[{trace_id}] START {operation} "
        f"{' '.join(f'{k}={v!r}' for k, v in context.items())}"
    )
    try:
        yield details
    except Exception as e:
        error = f"{type(e).__name__}: {e}"
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record(operation, elapsed_ms, error)
        outcome = "OK" if error is None else f"FAILED {error}"
        logger.debug(
            f"[{trace_id}] END {operation} {elapsed_ms:.2f}ms {outcome} "
            f"{' '.join(f'{k}={v}' for k, v in details.items())}"
        )


def _trace_value(value: Any) -> Any:
    if isinstance(value, str) and len(value) > _MAX_TRACE_VALUE:
        return value[:_MAX_TRACE_VALUE] + "..."
    return value


def traced(operation: Optional[str] = None) -> Callable[[F], F]:
    """Run every call of the decorated function inside ``timed_operation``.

    ``snippet_id``, ``title`` and ``query`` arguments are picked up whether
    they are passed by position or by keyword.
    """

    def decorator(func: F) -> F:
        name = operation or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            arguments = signature.bind_partial(*args, **kwargs).arguments
            context = {
                key: _trace_value(arguments[key])
                for key in TRACE_ARGUMENTS
                if key in arguments
            }
            with timed_operation(name, **context) as details:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple, dict)):
                    details["result_count"] = len(result)
                return result

        return wrapper  # type: ignore

    return decorator
