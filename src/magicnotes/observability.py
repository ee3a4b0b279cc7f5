"""Observability utilities for MagicNotes.

Rotating file logging for the ``magicnotes`` logger tree, plus in-process
timing metrics. Operations are grouped into components by name prefix:
``mn_*`` are MCP tool calls, ``ai_*`` are AI requests, ``editor_*`` are
editor commits and everything else is a store-level operation.
"""
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterator, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".magicnotes" / "logs"
LOG_FILE_NAME = "magicnotes.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

COMPONENT_PREFIXES = (
    ("mn_", "tool"),
    ("ai_", "ai"),
    ("editor_", "editor"),
)

_logging_configured = False


def component_of(operation: str) -> str:
    """Name of the component an operation is reported under."""
    for prefix, component in COMPONENT_PREFIXES:
        if operation.startswith(prefix):
            return component
    return "store"


def _file_handler_for(target: logging.Logger, log_file: Path) -> Optional[RotatingFileHandler]:
    for handler in target.handlers:
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_file:
            return handler
    return None


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Send the ``magicnotes`` loggers to a rotating file, and optionally stderr.

    Calling this again with the same directory only updates the level.

    Args:
        log_dir: Directory for log files. Defaults to ~/.magicnotes/logs/
        level: Logging level (default: INFO)
        max_bytes: Maximum size per log file before rotation
        backup_count: Number of rotated files to keep
        console: Also log to stderr

    Returns:
        Path to the log directory
    """
    global _logging_configured

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = (log_path / LOG_FILE_NAME).resolve()

    app_logger = logging.getLogger("magicnotes")
    app_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = _file_handler_for(app_logger, log_file)
    if file_handler is None:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        app_logger.addHandler(file_handler)
    file_handler.setLevel(level)

    has_console = any(
        type(h) is logging.StreamHandler for h in app_logger.handlers
    )
    if console and not has_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        app_logger.addHandler(console_handler)

    _logging_configured = True
    app_logger.info(f"Logging to {log_file}")
    return log_path


def is_logging_configured() -> bool:
    """Check if file logging has been configured."""
    return _logging_configured


@dataclass
class OperationMetrics:
    """Running totals for one operation name."""
    component: str
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: Optional[float] = None
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.count if self.count else 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "count": self.count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "avg_duration_ms": round(self.avg_duration_ms, 2),
            "min_duration_ms": round(self.min_duration_ms or 0.0, 2),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
        }


class MetricsCollector:
    """Thread-safe in-process metrics for store, editor, AI and tool operations."""

    def __init__(self):
        self._ops: Dict[str, OperationMetrics] = {}
        self._lock = Lock()
        self._started = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Record one completed operation."""
        with self._lock:
            entry = self._ops.get(operation)
            if entry is None:
                entry = self._ops[operation] = OperationMetrics(component_of(operation))
            entry.count += 1
            entry.total_duration_ms += duration_ms
            entry.max_duration_ms = max(entry.max_duration_ms, duration_ms)
            if entry.min_duration_ms is None or duration_ms < entry.min_duration_ms:
                entry.min_duration_ms = duration_ms
            if success:
                entry.success_count += 1
            else:
                entry.error_count += 1
                entry.last_error = error
                entry.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every operation, keyed by operation name."""
        with self._lock:
            return {name: entry.as_dict() for name, entry in self._ops.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across operations, with per-component counts."""
        with self._lock:
            by_component: Dict[str, Dict[str, int]] = defaultdict(lambda: {"count": 0, "errors": 0})
            for entry in self._ops.values():
                by_component[entry.component]["count"] += entry.count
                by_component[entry.component]["errors"] += entry.error_count
            return {
                "uptime_seconds": (datetime.now(timezone.utc) - self._started).total_seconds(),
                "total_operations": sum(e.count for e in self._ops.values()),
                "total_errors": sum(e.error_count for e in self._ops.values()),
                "operations_tracked": sorted(self._ops),
                "by_component": dict(by_component),
            }

    def reset(self) -> None:
        """Forget everything recorded so far."""
        with self._lock:
            self._ops.clear()
            self._started = datetime.now(timezone.utc)


# Shared by every component in the process
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context) -> Iterator[Dict[str, Any]]:
    """Time a block, log its start and end, and record it in ``metrics``.

    Yields a dict the block can fill with result details; they are
    appended to the END log line.

    Example:
        with timed_operation("bulk_move", count=3) as op:
            op["moved"] = store.move_many(ids, folder_id)
    """
    correlation_id = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {"correlation_id": correlation_id}
    started = time.perf_counter()
    logger.debug(
        f"[{correlation_id}] START {operation} "
        f"({', '.join(f'{k}={v}' for k, v in context.items())})"
    )

    error: Optional[str] = None
    try:
        yield details
    except Exception as e:
        error = str(e)
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, error is None, error)
        extra = ", ".join(f"{k}={v}" for k, v in details.items() if k != "correlation_id")
        outcome = "OK" if error is None else f"ERROR: {error}"
        logger.debug(f"[{correlation_id}] END {operation} ({elapsed_ms:.2f}ms) [{outcome}] {extra}")
